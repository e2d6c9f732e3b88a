"""
Logging configuration for reviewctx.

Console and rotating-file output with optional JSON formatting, plus an
adapter that tags every record with the repository an operation runs for.
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, MutableMapping, Optional

if TYPE_CHECKING:
    from .config import Config

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        scope = getattr(record, "scope", None)
        if scope:
            log_data["scope"] = scope

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class ScopedLogger(logging.LoggerAdapter):
    """
    Prefixes messages with a repository key and exposes it as `record.scope`.

    Example:
        log = ScopedLogger(logger, "octo/widgets")
        log.info("Indexed 12 files")  # "[octo/widgets] Indexed 12 files"
    """

    def __init__(self, logger: logging.Logger, scope: str):
        super().__init__(logger, {"scope": scope})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("scope", self.extra["scope"])
        kwargs["extra"] = extra
        return f"[{self.extra['scope']}] {msg}", kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_format: bool = False,
    max_log_size_mb: int = 10,
    log_backups: int = 5,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a rotating log file
        json_format: Use JSON formatting for logs
        max_log_size_mb: Maximum log file size in MB before rotation
        log_backups: Number of backup log files to keep
    """
    numeric_level = getattr(logging, level.upper())
    formatter: logging.Formatter
    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(numeric_level)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(log_file),
                maxBytes=max_log_size_mb * 1024 * 1024,
                backupCount=log_backups,
                encoding="utf-8",
            )
        except OSError as e:
            root_logger.warning(f"Failed to set up file logging: {e}. Using console only.")
        else:
            file_handler.setFormatter(formatter)
            file_handler.setLevel(numeric_level)
            root_logger.addHandler(file_handler)
            root_logger.info(f"Logging to file: {log_file}")

    root_logger.debug(
        f"Logging initialized: level={level}, "
        f"file={'enabled' if log_file else 'disabled'}, "
        f"format={'JSON' if json_format else 'text'}"
    )


def setup_logging_from_config(config: "Config", level: Optional[str] = None) -> None:
    """Configure logging from the [logging] section, with an optional level override."""
    setup_logging(
        level=level or config.get("logging", "level", default="INFO"),
        log_file=config.resolve_path("logging", "file"),
        json_format=bool(config.get("logging", "json", default=False)),
    )

