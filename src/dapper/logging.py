"""Diagnostic logging for dapper.

Everything dapper logs lives under the ``dapper`` logger and goes to stderr,
so it never mixes with the output of the command running in the container.
Notices meant for the user are printed with a rich Console instead.

Debug output is enabled with ``dapper --debug`` or ``DAPPER_DEBUG=1``.
"""

from __future__ import annotations

import logging
import os
import sys

from .constants import ENV_DEBUG, LOGGER_NAMESPACE

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
LOG_FORMAT_DEBUG = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%H:%M:%S"

_handler: logging.Handler | None = None


def _get_log_level() -> int:
    if os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes"):
        return logging.DEBUG
    return logging.WARNING


def _formatter(debug: bool) -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT_DEBUG if debug else LOG_FORMAT, datefmt=DATE_FORMAT)


def _init_logging() -> None:
    """Attach the stderr handler to the dapper namespace, once."""
    global _handler
    if _handler is not None:
        return

    level = _get_log_level()
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.setLevel(level)
    namespace.propagate = True

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(_formatter(level == logging.DEBUG))
    namespace.addHandler(_handler)


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``, placed under the dapper namespace."""
    _init_logging()
    if name != LOGGER_NAMESPACE and not name.startswith(f"{LOGGER_NAMESPACE}."):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return logging.getLogger(name)


def set_debug(enabled: bool = True) -> None:
    """Switch the dapper namespace between DEBUG and WARNING."""
    _init_logging()
    logging.getLogger(LOGGER_NAMESPACE).setLevel(logging.DEBUG if enabled else logging.WARNING)
    if _handler is not None:
        _handler.setFormatter(_formatter(enabled))
