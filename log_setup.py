"""Logging configuration for the API server and the CLI.

configure() runs once at startup; every module logs through
logging.getLogger(__name__).

Handlers:
  console        LOG_LEVEL (default INFO), one line per record
  <LOG_DIR>/app.log  DEBUG, with file:line, rotating 5 x 5 MB
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

DEFAULT_LOGS_DIR = Path(__file__).parent / "logs"

_CONSOLE_FMT = "%(asctime)s  %(levelname)-7s  %(name)s — %(message)s"
_FILE_FMT = "%(asctime)s  %(levelname)-7s  %(name)-14s  %(filename)s:%(lineno)d — %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"

# SDK and transport loggers that log every request at INFO
_NOISY = ("urllib3", "httpx", "httpcore", "werkzeug", "openai", "anthropic", "replicate", "PIL")


def _file_handler(logs_dir: Path) -> logging.Handler:
    logs_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        logs_dir / "app.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FMT, datefmt=_DATE_FMT))
    return handler


def configure(level: Optional[str] = None, logs_dir: Optional[Path] = None) -> None:
    """Attach console and rotating-file handlers to the root logger.

    A root logger that already has handlers is left alone, so calling this
    from both create_app() and the CLI is harmless.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setLevel(getattr(logging, level_name, logging.INFO))
    console.setFormatter(logging.Formatter(_CONSOLE_FMT, datefmt=_DATE_FMT))
    root.addHandler(console)

    root.addHandler(_file_handler(Path(logs_dir or os.environ.get("LOG_DIR") or DEFAULT_LOGS_DIR)))

    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)
