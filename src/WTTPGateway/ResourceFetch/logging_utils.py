"""Structured logging helpers shared across resource fetch components."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

__all__ = ["CONTEXT_FIELDS", "JSONFormatter", "setup_logging"]

LOGGER_NAME = "WTTPGateway.ResourceFetch"

CONTEXT_FIELDS = ("network", "site", "path", "status", "stage", "chunk_index", "chunk_total")


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record with fetch context fields."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
    log_dir: Optional[Path] = None,
    max_log_size_mb: int = 20,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the package logger with a console handler and optional JSONL file.

    Repeated calls replace previously installed handlers instead of stacking
    new ones. Console output goes to stderr so fetched content can be piped
    from stdout.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_wttp_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    if json_output:
        stream_handler.setFormatter(JSONFormatter())
    else:
        stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._wttp_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"wttp-fetch-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._wttp_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
