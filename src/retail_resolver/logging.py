"""Package-wide logging: one configured ``retail_resolver`` logger, per-module children."""

import logging
import os
import sys
from typing import List, Optional

ROOT_NAME = "retail_resolver"
FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level(value: Optional[str]) -> int:
    name = (value or "INFO").strip().upper()
    if name == "WARN":
        name = "WARNING"
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _package_logger() -> logging.Logger:
    """Attach handlers to the package logger once; children propagate to it.

    Honors LOG_LEVEL (default INFO) and LOG_FILE (optional, appended).
    Uvicorn, httpx and Playwright loggers are left alone.
    """
    root = logging.getLogger(ROOT_NAME)
    if root.handlers:
        return root
    root.setLevel(_level(os.environ.get("LOG_LEVEL")))
    formatter = logging.Formatter(fmt=FORMAT, datefmt=DATE_FORMAT)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    log_file = os.environ.get("LOG_FILE")
    file_error: Optional[OSError] = None
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            file_error = e
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.propagate = False
    if file_error is not None:
        root.warning(f"LOG_FILE {log_file} could not be opened ({file_error}); logging to stdout only")
    return root


def get_logger(name: str) -> logging.Logger:
    _package_logger()
    return logging.getLogger(f"{ROOT_NAME}.{name}")


def set_level(level: str) -> None:
    """Change the level of every resolver logger at once."""
    _package_logger().setLevel(_level(level))
