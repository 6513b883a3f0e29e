from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

_configured = False


def configure_logging(debug: bool = False, log_file: Path | None = None) -> None:
    """
    Configure the `assetflow` logger hierarchy once per process.

    Level comes from `debug`, else ASSETFLOW_LOG_LEVEL, else WARNING (the
    console already reports task progress).
    """
    global _configured
    logger = logging.getLogger("assetflow")
    if debug:
        level = logging.DEBUG
    else:
        name = os.getenv("ASSETFLOW_LOG_LEVEL", "WARNING").upper()
        level = getattr(logging, name, logging.WARNING)
    logger.setLevel(level)

    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(fh)

    _configured = True
