import os
import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from rich.console import Console
from rich.logging import RichHandler

REDACTED = "[HIDDEN]"


class LogConfig:
    """Logging configuration manager."""

    def __init__(
        self,
        log_level: str = 'INFO',
        log_file: Optional[str] = None,
        log_format: Optional[str] = None,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        json_logging: bool = False,
        console: Optional[Console] = None,
        secrets: Iterable[str] = (),
    ):
        """
        Initialize the logging configuration.

        Args:
            log_level: Logging level
            log_file: Optional log file path
            log_format: Optional log format string for the file handler
            max_bytes: Maximum size of log file before rotation
            backup_count: Number of backup files to keep
            json_logging: Whether to use JSON logging format
            console: Rich console used by the console handler
            secrets: Values that must never appear in log output
        """
        self.log_level = getattr(logging, log_level.upper())
        self.log_file = log_file
        self.log_format = log_format or (
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self.json_logging = json_logging
        self.console = console
        self.redaction_filter = SecretRedactionFilter(secrets)

    def configure(self) -> None:
        """Configure logging with the specified settings."""
        handlers = []

        if self.json_logging:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(JsonFormatter())
        else:
            console_handler = RichHandler(
                console=self.console,
                rich_tracebacks=True,
                show_path=False,
            )
            console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        console_handler.setLevel(self.log_level)
        handlers.append(console_handler)

        if self.log_file:
            log_dir = os.path.dirname(self.log_file)
            if log_dir:
                Path(log_dir).mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                self.log_file,
                maxBytes=self.max_bytes,
                backupCount=self.backup_count
            )
            file_handler.setFormatter(
                JsonFormatter() if self.json_logging else logging.Formatter(self.log_format)
            )
            file_handler.setLevel(self.log_level)
            handlers.append(file_handler)

        root_logger = logging.getLogger()
        root_logger.setLevel(self.log_level)

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        for handler in handlers:
            handler.addFilter(self.redaction_filter)
            root_logger.addHandler(handler)

    def add_secret(self, secret: str) -> None:
        """Register a value to be masked in all subsequent log records."""
        self.redaction_filter.add(secret)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.utcnow().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'step'):
            log_data['step'] = record.step

        return json.dumps(log_data)


class SecretRedactionFilter(logging.Filter):
    """Masks registered secret values in log records."""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self._secrets = {s for s in secrets if s}

    def add(self, secret: str) -> None:
        if secret:
            self._secrets.add(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self._secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True
