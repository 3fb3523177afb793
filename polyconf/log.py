"""
Logging helpers for the polyconf package.

The package never configures the root logger; applications do that. We only
register the NOTICE level (used for non-fatal diagnostics such as repeated
properties keys) and hang a NullHandler on the package logger.
"""

from __future__ import annotations

import logging

PACKAGE_LOGGER_NAME = 'polyconf'

# Between INFO (20) and WARNING (30)
NOTICE = 25
logging.addLevelName(NOTICE, 'NOTICE')

logging.getLogger(PACKAGE_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Return a logger under the package namespace.

    Usage: from polyconf.log import get_logger; log = get_logger(__name__)

    >>> get_logger().name
    'polyconf'
    >>> get_logger('polyconf.config').name
    'polyconf.config'
    >>> get_logger('formats').name
    'polyconf.formats'
    """
    if not name or name == PACKAGE_LOGGER_NAME:
        return logging.getLogger(PACKAGE_LOGGER_NAME)
    if not name.startswith(PACKAGE_LOGGER_NAME + '.'):
        name = f'{PACKAGE_LOGGER_NAME}.{name}'
    return logging.getLogger(name)


def notice(logger: logging.Logger, msg: str, *args) -> None:
    """Log ``msg`` at the NOTICE level."""
    logger.log(NOTICE, msg, *args)
