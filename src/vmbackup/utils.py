"""Utility functions and notification system for VMBackup."""

import os
import sys
import shutil
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union


class NotificationManager:
    """Simple notification manager for console and file logging."""

    def __init__(self, level: str = "INFO", console: bool = True,
                 log_file: Optional[str] = None):
        """Initialize notification manager.

        Args:
            level: Logging level name
            console: Whether to log to stdout
            log_file: Optional path of a log file
        """
        self.level = level
        self.console = console
        self.log_file = log_file
        self.logger = self._setup_logger()
        self.use_unicode = self._check_unicode_support()

    @classmethod
    def from_settings(cls, settings) -> "NotificationManager":
        """Build a notification manager from ``BackupSettings``."""
        return cls(settings.log_level, settings.log_console, settings.log_file)

    def _check_unicode_support(self) -> bool:
        """Check if the terminal supports Unicode characters."""
        try:
            "✅".encode(sys.stdout.encoding or 'utf-8')
            return True
        except (UnicodeEncodeError, LookupError):
            return False

    def _setup_logger(self) -> logging.Logger:
        """Setup logging configuration."""
        logger = logging.getLogger('vmbackup')

        # Clear existing handlers
        logger.handlers.clear()
        logger.setLevel(getattr(logging, str(self.level).upper(), logging.INFO))

        if self.console:
            console_handler = logging.StreamHandler(sys.stdout)

            # Set encoding for Windows compatibility
            if hasattr(console_handler.stream, 'reconfigure'):
                try:
                    console_handler.stream.reconfigure(encoding='utf-8', errors='replace')
                except (AttributeError, OSError, ValueError):
                    pass

            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(levelname)s - %(message)s'
            ))
            logger.addHandler(console_handler)

        if self.log_file:
            Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
            logger.addHandler(file_handler)

        return logger

    def _format_message(self, message: str, prefix: str) -> str:
        """Format message with appropriate prefix based on Unicode support."""
        if self.use_unicode:
            return f"{prefix} {message}"
        ascii_prefixes = {
            "✅": "[SUCCESS]",
            "❌": "[FAILED]",
        }
        return f"{ascii_prefixes.get(prefix, prefix)} {message}"

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def info(self, message: str) -> None:
        """Log info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log error message."""
        self.logger.error(message)

    def success(self, message: str) -> None:
        """Log success message."""
        self.logger.info(self._format_message(message, "✅"))

    def failure(self, message: str) -> None:
        """Log failure message."""
        self.logger.error(self._format_message(message, "❌"))


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds, as version names store it."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def generate_timestamp(timestamp_format: str, moment: Optional[datetime] = None) -> str:
    """Generate timestamp string for version naming.

    Args:
        timestamp_format: strftime pattern of version directory names
        moment: Time to format, defaults to now (UTC)

    Returns:
        Timestamp string, e.g. 2024-01-31_23-59-00
    """
    moment = moment or utc_now()
    # Naive datetimes are already UTC.
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(timestamp_format)


def parse_timestamp(name: str, timestamp_format: str) -> Optional[datetime]:
    """Parse a version directory name strictly.

    Returns the UTC timestamp, or None when the name does not match the
    format exactly (including zero padding).
    """
    try:
        parsed = datetime.strptime(name, timestamp_format)
    except ValueError:
        return None
    if parsed.strftime(timestamp_format) != name:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def format_size(size_bytes: int) -> str:
    """Format file size in human readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"


def get_directory_size(directory: Union[str, Path]) -> int:
    """Get total size of directory in bytes."""
    total_size = 0
    for dirpath, dirnames, filenames in os.walk(directory):
        for filename in filenames:
            filepath = os.path.join(dirpath, filename)
            if os.path.exists(filepath):
                total_size += os.path.getsize(filepath)
    return total_size


def ensure_directory(path: Union[str, Path]) -> Path:
    """Ensure directory exists, create if it doesn't."""
    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj


def remove_tree(path: Union[str, Path]) -> Optional[str]:
    """Recursively delete a directory.

    Returns:
        None on success, otherwise the error text
    """
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return None
    except OSError as e:
        return str(e)
    return None


def is_command_available(command: str) -> bool:
    """Check if a command is available in the system PATH or as a file path."""
    return shutil.which(command) is not None or Path(command).is_file()
