import io
import logging

from warpack.logger import LOGGER_NAME, setup_logger


def _own_handlers(package_logger):
    return [h for h in package_logger.handlers if getattr(h, "_warpack", False)]


def test_default_level_is_info():
    """Verify the package logger starts at INFO with one formatted handler."""
    stream = io.StringIO()
    package_logger = setup_logger(stream=stream)

    assert package_logger.name == LOGGER_NAME
    assert package_logger.level == logging.INFO
    assert len(_own_handlers(package_logger)) == 1

    logging.getLogger("warpack.config").info("seeded defaults")
    logging.getLogger("warpack.config").debug("hidden")
    assert stream.getvalue() == "[INFO] warpack.config: seeded defaults\n"


def test_verbose_and_quiet_levels():
    """Verify --verbose enables DEBUG, --quiet keeps WARNING and verbose wins."""
    assert setup_logger(verbose=True).level == logging.DEBUG
    assert setup_logger(quiet=True).level == logging.WARNING
    assert setup_logger(verbose=True, quiet=True).level == logging.DEBUG


def test_repeated_setup_replaces_handler():
    """Verify calling setup twice leaves a single handler on the latest stream."""
    first, second = io.StringIO(), io.StringIO()
    setup_logger(stream=first)
    package_logger = setup_logger(stream=second)

    assert len(_own_handlers(package_logger)) == 1
    logging.getLogger("warpack.detection").warning("rails hook skipped")
    assert first.getvalue() == ""
    assert "[WARNING] warpack.detection: rails hook skipped" in second.getvalue()


def test_root_logger_is_left_alone():
    """Verify only the warpack logger gets a handler."""
    root_handlers = list(logging.getLogger().handlers)
    setup_logger(stream=io.StringIO())
    assert logging.getLogger().handlers == root_handlers
