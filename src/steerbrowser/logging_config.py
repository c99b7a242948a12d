"""Logging setup for steerbrowser.

Library modules only create loggers (``logging.getLogger(__name__)``);
applications call ``setup_logging()`` once to attach a handler.
"""

import logging
import sys

from steerbrowser.config import CONFIG

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str | None = None, stream=None) -> logging.Logger:
    """Configure the ``steerbrowser`` logger hierarchy.

    Args:
        level: Log level name. Defaults to ``STEERBROWSER_LOGGING_LEVEL``.
        stream: Output stream for the handler. Defaults to stderr.

    Returns:
        The configured package logger.
    """
    level_name = (level or CONFIG.LOGGING_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    package_logger = logging.getLogger('steerbrowser')
    package_logger.setLevel(log_level)

    if not package_logger.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    package_logger.propagate = False

    # Transport libraries are noisy at debug level
    cdp_level = getattr(logging, CONFIG.CDP_LOGGING_LEVEL, logging.WARNING)
    for name in ('websockets', 'httpx', 'httpcore', 'cdp_use'):
        logging.getLogger(name).setLevel(cdp_level)

    return package_logger
