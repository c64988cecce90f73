"""Logging setup shared by the app and the uvicorn entrypoint."""

import logging
import sys
from datetime import datetime
from typing import Optional

LOG_FORMAT = "[{asctime}] {levelname:8} {name}: {message}"


class SignalingFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(fmt=LOG_FORMAT, style="{")

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure the root logger. Safe to call more than once: existing
    handlers are replaced rather than stacked.
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    formatter = SignalingFormatter()

    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for handler in handlers:
        handler.setLevel(level)
        root.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
