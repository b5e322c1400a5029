"""
PRREVIEW Logging Configuration
==============================

Root logger setup shared by the API process and the maintenance CLI.

Two output shapes:
    text  - "%(asctime)s [LEVEL] logger | message" for local runs
    json  - one object per line, with the review context extras
            (product_id, review_id, customer_id, event, duration) lifted
            to top-level keys

Usage:
    from src.orchestrator.logging_config import setup_logging

    setup_logging(level="DEBUG", json_output=True, log_file="logs/prreview.log")

    logger.info("recomputed", extra={"product_id": 42, "event": "recompute"})
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional

CONTEXT_FIELDS = ("product_id", "review_id", "customer_id", "event", "duration")

DEFAULT_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)-30s | %(message)s"


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

        {"ts": "...", "level": "INFO", "logger": "src.reviews.aggregates",
         "msg": "...", "product_id": 42, "event": "recompute"}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update({
            key: getattr(record, key)
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_handlers(log_file: Optional[str], max_bytes: int, backup_count: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count,
        ))
    return handlers


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    fmt: Optional[str] = None,
):
    """
    Replace the root logger's handlers.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_output: JSONFormatter instead of the text format
        log_file: Also write to this file, rotated at max_bytes
        max_bytes: Rotation threshold for log_file
        backup_count: Rotated files kept
        fmt: Text format override (ignored with json_output)
    """
    formatter: logging.Formatter
    if json_output:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(fmt or DEFAULT_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in _build_handlers(log_file, max_bytes, backup_count):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # Per-request access lines drown out aggregate events
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    root.debug(f"Logging ready: level={level} json={json_output} file={log_file or '-'}")


def setup_logging_from_settings(verbose: bool = False):
    """setup_logging() driven by LoggingConfig; verbose forces DEBUG."""
    from ..data.config import get_settings

    config = get_settings().logging
    setup_logging(
        level="DEBUG" if verbose else config.level,
        json_output=config.json_logs,
        log_file=config.log_file,
        fmt=config.format,
    )
