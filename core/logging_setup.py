"""Logging configuration for the Farmers World bot.

Sets up a dual-handler logging pipeline:

1. **Console** -- :class:`SafeStreamHandler` that never lets an encoding
   error from a narrow Windows code page kill a long-running bot.
2. **File** -- :class:`CompressedRotatingFileHandler` writing to
   ``logs/farm_bot.log`` with gzip rotation (10 MiB per file, 5 backups).

Usage::

    from core.logging_setup import setup_logging
    setup_logging("DEBUG")
"""

import gzip
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from core.config import LOGS_DIR

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
DEFAULT_LOG_FILE = str(LOGS_DIR / "farm_bot.log")

# Third-party loggers that are too chatty at DEBUG
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")


class CompressedRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that gzip-compresses rotated log files."""

    def rotation_filename(self, default_name: str) -> str:
        return f"{default_name}.gz"

    def rotate(self, source: str, dest: str) -> None:
        """Compress *source* into *dest* and remove *source*."""
        with open(source, "rb") as f_in:
            with gzip.open(dest, "wb") as f_out:
                shutil.copyfileobj(f_in, f_out)
        os.remove(source)


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that replaces characters the console cannot encode."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            try:
                self.stream.write(msg + self.terminator)
            except UnicodeEncodeError:
                encoding = getattr(self.stream, "encoding", None) or "ascii"
                safe_msg = msg.encode(encoding, errors="replace").decode(encoding)
                self.stream.write(safe_msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = DEFAULT_LOG_FILE) -> None:
    """Configure the root logger with console and (optional) file handlers.

    Args:
        log_level: Logging level name (``"DEBUG"``, ``"INFO"`` ...).
            Unknown names fall back to ``INFO``.
        log_file: Path of the rotating log file, or ``None`` for console only.
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    handlers = [SafeStreamHandler(sys.stdout)]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            CompressedRotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
        )

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
