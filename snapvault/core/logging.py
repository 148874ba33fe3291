"""
Secure Logging Module
=====================

Logging with secret filtering for the encryption service.

Security Features:
- Automatic redaction of key material and base64 blobs
- Rotating log files with size limits
- Component loggers under the ``snapvault`` namespace
"""

from __future__ import annotations

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Final, Optional, Pattern

if TYPE_CHECKING:
    from snapvault.core.config import LoggingConfig


_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    ("encryption_key", re.compile(r'(?i)(encryption[_-]?key|aes[_-]?key)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("password", re.compile(r'(?i)(password|passwd|pwd)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("token", re.compile(r'(?i)(token|bearer)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("secret", re.compile(r'(?i)(secret|private[_-]?key)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    # Base64 encoded keys, packages and ciphertext
    ("base64_secret", re.compile(r'[A-Za-z0-9+/]{40,}={0,2}')),
    # Hex encoded secrets (longer than 32 chars)
    ("hex_secret", re.compile(r'(?i)(?:0x)?[a-f0-9]{32,}')),
]

_REDACTED_TEXT: Final[str] = "[REDACTED]"

_LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_FILE_LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"


class SecureLogFilter(logging.Filter):
    """
    Log filter that removes sensitive information from log messages.

    Messages and string arguments are scanned for patterns that might
    hold key material and matches are replaced with [REDACTED].
    """

    def __init__(self, name: str = "", additional_patterns: Optional[list[Pattern[str]]] = None) -> None:
        super().__init__(name)
        self._additional_patterns = additional_patterns or []

    def filter(self, record: logging.LogRecord) -> bool:
        """Sanitize the record in place. Always keeps the record."""
        if record.msg and isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._sanitize(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _sanitize(self, text: str) -> str:
        result = text

        for name, pattern in _SENSITIVE_PATTERNS:
            result = pattern.sub(f"{name}={_REDACTED_TEXT}", result)

        for pattern in self._additional_patterns:
            result = pattern.sub(_REDACTED_TEXT, result)

        return result


class SecureRotatingFileHandler(RotatingFileHandler):
    """Rotating file handler that creates its directory and rejects traversal."""

    def __init__(
        self,
        filename: str | Path,
        mode: str = "a",
        maxBytes: int = 10 * 1024 * 1024,  # 10 MB default
        backupCount: int = 5,
        encoding: str = "utf-8",
    ) -> None:
        if ".." in Path(filename).parts:
            raise ValueError("Log path cannot contain path traversal sequences")

        log_path = Path(filename).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            str(log_path),
            mode=mode,
            maxBytes=maxBytes,
            backupCount=backupCount,
            encoding=encoding,
        )


def get_secure_logger(
    name: str,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Create a secure logger with automatic secret filtering.

    Args:
        name: Logger name (typically __name__)
        log_dir: Directory for log files (file output disabled if not provided)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Whether to output to console
        enable_file: Whether to output to file
        max_file_size: Maximum log file size before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured secure logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    secure_filter = SecureLogFilter()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%H:%M:%S"))
        console_handler.addFilter(secure_filter)
        logger.addHandler(console_handler)

    if enable_file and log_dir:
        file_handler = SecureRotatingFileHandler(
            filename=log_dir / f"{name.replace('.', '_')}.log",
            maxBytes=max_file_size,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        file_handler.addFilter(secure_filter)
        logger.addHandler(file_handler)

    return logger


def configure_logging(config: LoggingConfig, name: str = "snapvault") -> logging.Logger:
    """
    Configure the ``snapvault`` logger tree from a LoggingConfig.

    Component loggers (``snapvault.stream``, ``snapvault.migrations``,
    ``snapvault.web``) propagate to it and inherit its filtered handlers.
    """
    return get_secure_logger(
        name,
        log_dir=config.log_dir,
        level=config.level,
        enable_console=config.enable_console,
        enable_file=config.enable_file,
        max_file_size=config.max_file_size_bytes,
        backup_count=config.backup_count,
    )
