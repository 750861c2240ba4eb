"""Logging configuration for the Pharos task runner.

Sets up a dual-handler logging pipeline:

1. **Console** -- :class:`SafeStreamHandler` that gracefully handles
   Unicode on Windows by falling back to ``cp1252`` replacement
   encoding.
2. **File** -- :class:`CompressedRotatingFileHandler` writing to
   ``logs/pharos_bot.log`` with automatic gzip rotation (10 MiB per
   file, 5 backups).

A ``SUCCESS`` level (25) sits between INFO and WARNING for completed
on-chain and API actions.

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

SUCCESS = 25
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s - %(message)s'
LOG_FILE_NAME = "pharos_bot.log"

logging.addLevelName(SUCCESS, "SUCCESS")


def log_success(logger: logging.Logger, msg: str, *args) -> None:
    """Log *msg* at the ``SUCCESS`` level."""
    logger.log(SUCCESS, msg, *args)


class CompressedRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that gzip-compresses rotated log files."""

    def rotation_filename(self, default_name: str) -> str:
        return f"{default_name}.gz"

    def rotate(self, source: str, dest: str) -> None:
        """Compress *source* into *dest* and remove *source*."""
        with open(source, 'rb') as f_in:
            with gzip.open(dest, 'wb') as f_out:
                shutil.copyfileobj(f_in, f_out)
        os.remove(source)


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that never crashes on unencodable characters.

    Windows consoles default to a narrow code page; on
    :exc:`UnicodeEncodeError` the message is re-encoded with
    replacement characters.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            try:
                self.stream.write(msg + self.terminator)
            except UnicodeEncodeError:
                encoding = getattr(self.stream, "encoding", None) or "cp1252"
                safe_msg = msg.encode(encoding, errors='replace').decode(encoding)
                self.stream.write(safe_msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Configure the root logger with console and file handlers.

    Args:
        log_level: Logging level name (e.g. ``"DEBUG"``, ``"SUCCESS"``).
            Unknown names fall back to ``INFO``.
        log_dir: Directory for the log file.  Defaults to ``LOGS_DIR``.
    """
    if sys.platform == "win32" and hasattr(sys.stdout, 'reconfigure'):
        sys.stdout.reconfigure(encoding='utf-8', errors='replace')
        sys.stderr.reconfigure(encoding='utf-8', errors='replace')

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    directory = log_dir or str(LOGS_DIR)
    os.makedirs(directory, exist_ok=True)
    file_handler = CompressedRotatingFileHandler(
        os.path.join(directory, LOG_FILE_NAME),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8',
    )
    stream_handler = SafeStreamHandler(sys.stdout)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[file_handler, stream_handler],
        force=True,
    )
    # web3 logs every RPC request at DEBUG
    logging.getLogger("web3").setLevel(max(level, logging.INFO))
