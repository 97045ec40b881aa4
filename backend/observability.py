"""Logging setup shared by the API and the CLI.

Modules log through ``logging.getLogger(__name__)`` using dotted event names
and structured ``extra`` fields, e.g.::

    logger.info("paragraph.moved", extra={"paragraph_id": pid, "index": 3})

``configure_logging()`` installs a single JSON stream handler on the root
logger, so ``extra`` fields land as keys of each log line.  It is safe to
call more than once.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

from backend.config import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _resolve_level(level: Optional[str]) -> int:
    return getattr(logging, (level or settings.log_level).upper(), logging.INFO)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger from ``settings.log_level`` (or *level*)."""
    root_logger = logging.getLogger()
    root_logger.setLevel(_resolve_level(level))

    if not any(getattr(h, "_strukturbild", False) for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter(_FORMAT))
        handler._strukturbild = True  # type: ignore[attr-defined]
        root_logger.addHandler(handler)

    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
