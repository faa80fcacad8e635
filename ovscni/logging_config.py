"""Plugin logging configuration.

The CNI runtime reads the plugin result from stdout, so log records go to
stderr or to the NetConf logFile, never to stdout. Every record is tagged
with the container being attached; attachment details (interface, socket
reference, bridge, port) are passed per call through ``extra=``.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from ovscni.config import settings
from ovscni.errors import FilesystemError

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(container_id).12s] %(name)s: %(message)s"

# Attachment context copied into JSON entries when a record carries it
CONTEXT_FIELDS = ("container_id", "if_name", "socket_ref", "bridge", "port")


class ContextFilter(logging.Filter):
    """Stamps the container ID of the current CNI call on every record."""

    def __init__(self, container_id: str = ""):
        super().__init__()
        self.container_id = container_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "container_id", ""):
            record.container_id = self.container_id
        return True


class CniJSONFormatter(logging.Formatter):
    """One JSON object per record, with the attachment context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": "ovscni",
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value:
                log_entry[field] = str(value)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def _open_handler(path: str) -> logging.Handler:
    if not path:
        return logging.StreamHandler(sys.stderr)
    try:
        return logging.FileHandler(path)
    except OSError as e:
        raise FilesystemError("open log file", path, e) from e


def setup_logging(
    container_id: str = "",
    log_file: str | None = None,
    log_level: str | None = None,
) -> None:
    """Configure plugin logging based on settings.

    Per-network overrides from the NetConf (logFile, logLevel) take
    precedence over the process-wide settings.

    Args:
        container_id: Container ID for inclusion in log entries
        log_file: Append logs to this file instead of stderr
        log_level: Level name overriding settings.log_level

    Raises:
        FilesystemError: If the log file cannot be opened
    """
    level_name = (log_level or settings.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = _open_handler(log_file or settings.log_file)
    handler.addFilter(ContextFilter(container_id))

    if settings.log_format.lower() == "json":
        handler.setFormatter(CniJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
