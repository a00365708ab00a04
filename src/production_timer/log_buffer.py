"""Package logger and the in-memory buffer behind ``/api/logs``."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Deque

logger = logging.getLogger("production_timer")

# Circular buffer of recent log entries (max 100)
log_buffer: Deque[dict] = deque(maxlen=100)


class LogBufferHandler(logging.Handler):
    """Logging handler that captures records into ``log_buffer``."""

    def emit(self, record: logging.LogRecord):
        try:
            log_entry = {
                "timestamp": datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
                "level": record.levelname,
                "logger": record.name,
                "message": self.format(record),
            }
            log_buffer.append(log_entry)
        except Exception:
            self.handleError(record)


_buffer_handler: LogBufferHandler | None = None


def configure_logging(level: str = "INFO") -> None:
    """Attach the buffer (and a stderr handler) to the package and uvicorn loggers."""
    global _buffer_handler

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if _buffer_handler is None:
        _buffer_handler = LogBufferHandler()
        _buffer_handler.setLevel(logging.DEBUG)
        _buffer_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(_buffer_handler)
        logging.getLogger("uvicorn").addHandler(_buffer_handler)

        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(stream)


def recent_logs(limit: int = 50) -> list[dict]:
    entries = list(log_buffer)
    return entries[-limit:] if limit > 0 else []
