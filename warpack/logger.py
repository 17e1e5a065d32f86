"""Console logging for the warpack CLI.

Only the ``warpack`` logger hierarchy is configured, so embedding warpack in
another tool leaves that tool's root logger alone.
"""

import logging
import sys
from typing import Optional, TextIO

LOGGER_NAME = "warpack"
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def log_level(verbose: bool = False, quiet: bool = False) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logger(
    verbose: bool = False,
    quiet: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Attach a stderr handler to the ``warpack`` logger.

    Calling it again replaces the handler, so only the latest stream gets
    output. ``verbose`` wins over ``quiet``.
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.setLevel(log_level(verbose, quiet))

    for old in [h for h in package_logger.handlers if getattr(h, "_warpack", False)]:
        package_logger.removeHandler(old)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler._warpack = True
    package_logger.addHandler(handler)

    return package_logger
