"""Process-wide logging setup."""

from __future__ import annotations

import logging
import sys

from stashkit.config import settings

_HANDLER_NAME = "stashkit"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Attach a single stdout handler to the root logger.

    Safe to call repeatedly; later calls only adjust the level.
    """
    root = logging.getLogger()
    resolved = (level or settings.log_level or "INFO").upper()
    root.setLevel(resolved)
    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            handler.setLevel(resolved)
            return
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.setLevel(resolved)
    root.addHandler(handler)
