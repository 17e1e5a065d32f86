"""User overrides from ``config/warpack.toml``.

Example::

    archive_name = "store"
    package_path = "/WEB-INF/vendor/gems"
    excludes = ["tmp/cache/**"]

    [dependencies]
    jruby-openssl = ">= 0.7"

    [webxml.jruby]
    min.runtimes = 2

    [pathmaps]
    java_classes = ["WEB-INF/classes/%{src/,}p"]
"""

import logging
import tomllib
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Optional, Tuple

from warpack.config import BuildConfig
from warpack.dependencies import DependencySet
from warpack.errors import ConfigError


logger = logging.getLogger(__name__)

OVERRIDE_FILE = "config/warpack.toml"

SCALAR_KEYS = (
    "archive_name",
    "package_path",
    "include_dependencies",
    "exclude_logs",
    "use_dependency_manager",
    "autodeploy_dir",
    "manifest_file",
)

LIST_KEYS = (
    "features",
    "dirs",
    "includes",
    "excludes",
    "java_libs",
    "java_classes",
    "public_html",
    "webinf_files",
)

TABLE_KEYS = ("dependencies", "webxml", "pathmaps")


def load_overrides(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except OSError as exc:
        raise ConfigError(f"Failed to read override file: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid override file {path}: {exc}") from exc

    unknown = set(data) - set(SCALAR_KEYS) - set(LIST_KEYS) - set(TABLE_KEYS)
    if unknown:
        raise ConfigError(
            f"Unknown keys in {path}: " + ", ".join(sorted(unknown))
        )
    return data


def _flatten(table: Mapping[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    for key, value in table.items():
        dotted = f"{prefix}.{key}" if prefix else key
        if isinstance(value, Mapping):
            yield from _flatten(value, dotted)
        else:
            yield dotted, value


def apply_overrides(config: BuildConfig, data: Mapping[str, Any]) -> None:
    for key in SCALAR_KEYS:
        if key in data:
            setattr(config, key, data[key])

    for key in LIST_KEYS:
        if key in data:
            value = data[key]
            if not isinstance(value, list):
                raise ConfigError(f"'{key}' must be a list")
            setattr(config, key, value)

    if "dependencies" in data:
        config.dependencies = DependencySet(
            {name: requirement or None for name, requirement in data["dependencies"].items()}
        )

    for dotted, value in _flatten(data.get("webxml", {})):
        config.webxml.set(dotted, value)

    for category, patterns in data.get("pathmaps", {}).items():
        if isinstance(patterns, str):
            patterns = [patterns]
        config.pathmaps.replace(category, patterns)


def override_from_file(path: Path) -> Callable[[BuildConfig], None]:
    data = load_overrides(path)

    def override(config: BuildConfig) -> None:
        logger.debug("Applying overrides from %s", path)
        apply_overrides(config, data)

    return override


def find_override_file(project_root: Path, explicit: Optional[Path] = None) -> Optional[Path]:
    if explicit is not None:
        if not explicit.is_file():
            raise ConfigError(f"Override file not found: {explicit}")
        return explicit
    candidate = project_root / OVERRIDE_FILE
    if candidate.is_file():
        return candidate
    return None

