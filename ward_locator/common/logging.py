"""JSON logging with stable schema."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from ward_locator.common.constants import JSON_LOG_FIELDS
from ward_locator.common.fs import ensure_dir
from ward_locator.common.time_utils import utc_timestamp_iso

ROOT_LOGGER_NAME = "ward_locator"


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": utc_timestamp_iso(),
            "level": record.levelname,
            "component": getattr(record, "component", None) or record.name,
            "event": getattr(record, "event", None),
            "status": getattr(record, "status", None),
            "source": getattr(record, "source", None),
            "duration_ms": getattr(record, "duration_ms", None),
            "feature_count": getattr(record, "feature_count", None),
            "age_hours": getattr(record, "age_hours", None),
            "error_code": getattr(record, "error_code", None),
            "message": record.getMessage(),
        }
        for field in JSON_LOG_FIELDS:
            payload.setdefault(field, None)
        return json.dumps(payload, ensure_ascii=False)


def build_logger(level: str = "INFO", log_path: Path | None = None) -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level.upper())
    logger.handlers.clear()

    stream = logging.StreamHandler()
    stream.setFormatter(JsonLineFormatter())
    logger.addHandler(stream)

    if log_path is not None:
        ensure_dir(log_path.parent)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    return logger


def log_event(logger: logging.Logger, message: str, *, level: int = logging.INFO, **event_fields: Any) -> None:
    logger.log(level, message, extra=event_fields)
