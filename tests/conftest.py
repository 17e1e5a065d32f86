"""Shared fixtures for warpack tests."""

import logging
from pathlib import Path

import pytest

from warpack.logger import LOGGER_NAME


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty application directory."""
    root = tmp_path / "shop"
    root.mkdir()
    return root


@pytest.fixture
def rails_project(project: Path) -> Path:
    """A project with the usual Rails top-level directories."""
    for name in ("app", "config", "lib", "log", "tmp"):
        (project / name).mkdir()
    return project


@pytest.fixture(autouse=True)
def reset_warpack_logger():
    """Drop handlers the CLI attached so later tests do not write to closed streams."""
    package_logger = logging.getLogger(LOGGER_NAME)
    level = package_logger.level
    yield
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(level)
