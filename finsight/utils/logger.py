"""Logging infrastructure with user context."""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


class UserContextFilter(logging.Filter):
    """Add the anonymized user id to log records."""

    def __init__(self):
        super().__init__()
        self.user_id: Optional[str] = None

    def filter(self, record):
        """Add user_id to record."""
        record.user_id = self.user_id or "system"
        return True


class FinSightLogger:
    """Centralized logging manager."""

    def __init__(
        self,
        log_level: str = "INFO",
        log_dir: Optional[str] = None,
        max_file_size_mb: int = 10,
        backup_count: int = 30,
    ):
        self.user_filter = UserContextFilter()

        # Configure package logger
        self.logger = logging.getLogger("finsight")
        self.logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Remove existing handlers
        self.logger.handlers.clear()

        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] [user:%(user_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(self.user_filter)
        self.logger.addHandler(console_handler)

        # File handler with rotation, only when a log directory is configured
        log_dir = log_dir or os.getenv("FINSIGHT_LOG_DIR")
        self.log_file: Optional[Path] = None
        if log_dir:
            self.log_dir = Path(log_dir)
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = self.log_dir / "finsight.log"

            file_handler = RotatingFileHandler(
                self.log_file,
                maxBytes=max_file_size_mb * 1024 * 1024,
                backupCount=backup_count,
                encoding="utf-8"
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            file_handler.addFilter(self.user_filter)
            self.logger.addHandler(file_handler)

    def set_user_context(self, user_id: Optional[str]):
        """Set current (anonymized) user context for logging."""
        self.user_filter.user_id = user_id

    def get_logger(self) -> logging.Logger:
        """Get the configured logger."""
        return self.logger


# Global logger instance
_logger_instance: Optional[FinSightLogger] = None


def get_logger(log_level: Optional[str] = None) -> logging.Logger:
    """Get or create global logger instance."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = FinSightLogger(log_level or os.getenv("FINSIGHT_LOG_LEVEL", "INFO"))
    return _logger_instance.get_logger()


def configure_logging(settings) -> logging.Logger:
    """Rebuild the global logger from application settings."""
    global _logger_instance
    _logger_instance = FinSightLogger(
        log_level=settings.log_level,
        log_dir=settings.logs_dir,
        max_file_size_mb=settings.log_max_file_size_mb,
        backup_count=settings.log_backup_count,
    )
    return _logger_instance.get_logger()


def set_user_context(user_id: Optional[str]):
    """Set user context for logging. Only pass anonymized ids."""
    global _logger_instance
    if _logger_instance:
        _logger_instance.set_user_context(user_id)
