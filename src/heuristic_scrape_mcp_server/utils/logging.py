from __future__ import annotations

import logging
import os

# Third-party loggers that are chatty at INFO/DEBUG: httpx logs every request,
# readability logs its scoring, asyncio warns about slow callbacks.
_QUIET_LEVELS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "readability": logging.WARNING,
    "readability.readability": logging.WARNING,
    "pymupdf": logging.WARNING,
    "asyncio": logging.ERROR,
}

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging() -> None:
    """
    Set up stderr logging for local runs and MCP stdio hosts.

    A host that already installed root handlers keeps its configuration; only
    the level of the chatty third-party loggers is adjusted. `LOG_LEVEL`
    (default WARNING) sets the root level otherwise.
    """
    if not logging.getLogger().handlers:
        name = os.environ.get("LOG_LEVEL", "WARNING").strip().upper()
        logging.basicConfig(level=getattr(logging, name, logging.WARNING), format=_FORMAT)

    for logger_name, level in _QUIET_LEVELS.items():
        logging.getLogger(logger_name).setLevel(level)
