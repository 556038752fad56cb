"""
Logging configuration for dsyncpay.

This module provides centralized logging configuration with secret redaction
so access tokens, client secrets, API keys and webhook signatures never reach
log output.
"""

import logging
import logging.handlers
import os
import re
import sys
from pathlib import Path


class SecretRedactor(logging.Filter):
    SECRET_PATTERNS = [
        # PayPal credentials and tokens
        re.compile(r"(client_secret[=:]\s*)[^&\s,'\"]+", re.IGNORECASE),
        re.compile(r"(access_token['\"]?[=:]\s*['\"]?)[^&\s,'\"]+", re.IGNORECASE),
        re.compile(r"(Bearer )[a-zA-Z0-9\-_\.=]+", re.IGNORECASE),
        re.compile(r"(Basic )[a-zA-Z0-9+/=]+", re.IGNORECASE),
        # Coinbase Commerce
        re.compile(r"(X-CC-Api-Key['\"]?[=:]\s*['\"]?)[^&\s,'\"]+", re.IGNORECASE),
        re.compile(r"(X-CC-Webhook-Signature['\"]?[=:]\s*['\"]?)[a-fA-F0-9]+", re.IGNORECASE),
        re.compile(r"(webhook_secret[=:]\s*)[^&\s,'\"]+", re.IGNORECASE),
        # Generic patterns
        re.compile(r"(api_key[=:]\s*)[^&\s,'\"]+", re.IGNORECASE),
        re.compile(r"(password[=:]\s*)[^&\s,'\"]+", re.IGNORECASE),
        re.compile(r"(secret[=:]\s*)[^&\s,'\"]+", re.IGNORECASE),
        re.compile(r"(Authorization: )[a-zA-Z0-9\-_\.]+", re.IGNORECASE),
    ]

    def filter(self, record):
        """Redact sensitive data from log messages and arguments."""
        record.msg = redact(str(record.msg))
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: _redact_arg(v) for k, v in record.args.items()}
            else:
                record.args = tuple(_redact_arg(arg) for arg in record.args)
        return True


def _redact_arg(arg):
    # Numbers keep their type so %d/%f placeholders still format.
    if arg is None or isinstance(arg, (bool, int, float)):
        return arg
    text = str(arg)
    redacted = redact(text)
    return redacted if redacted != text else arg


def redact(message: str) -> str:
    """Apply every SecretRedactor pattern to a string."""
    for pattern in SecretRedactor.SECRET_PATTERNS:
        message = pattern.sub(lambda m: m.group(1) + "***REDACTED***", message)
    return message


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors to log messages."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def format(self, record):
        """Format the log record with colors."""
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def _validate_log_file_path(log_file: str) -> bool:
    """Validate log file path for writability and valid characters."""
    try:
        log_path = Path(log_file)
        invalid_chars = '<>:"|?*'
        if any(char in str(log_path) for char in invalid_chars):
            return False
        parent = log_path.parent
        if parent.exists() and not os.access(parent, os.W_OK):
            return False
        return True
    except Exception:
        return False


def _ensure_secret_redactor_on_handlers() -> None:
    """Ensure SecretRedactor filter is applied to all existing root handlers."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if not any(isinstance(f, SecretRedactor) for f in handler.filters):
            handler.addFilter(SecretRedactor())


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    log_format: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    use_colors: bool = True,
    include_timestamp: bool = True,
    clear_handlers: bool = False,
) -> None:
    """Set up logging configuration for dsyncpay."""
    if not isinstance(max_bytes, int) or max_bytes <= 0:
        max_bytes = 10 * 1024 * 1024
    if not isinstance(backup_count, int) or backup_count < 0:
        backup_count = 5

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level = level.upper()
    if level not in valid_levels:
        logging.warning("Invalid log level %s, defaulting to INFO", level)
        level = "INFO"

    log_level = getattr(logging, level)

    if log_format is None:
        if include_timestamp:
            log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            log_format = "%(name)s - %(levelname)s - %(message)s"

    env_use_colors = os.environ.get("DSyncPay_LogColors", "true").lower() == "true"
    use_colors = use_colors and env_use_colors and sys.stderr.isatty()

    console_formatter = ColoredFormatter(log_format) if use_colors else logging.Formatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if clear_handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(console_formatter)
    console_handler.addFilter(SecretRedactor())
    root_logger.addHandler(console_handler)

    if log_file:
        if not _validate_log_file_path(log_file):
            logging.error("Invalid log file path: %s", log_file)
            raise ValueError(f"Invalid log file path: {log_file}")

        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
        except OSError as e:
            logging.error("Failed to create rotating file handler for %s: %s", log_file, e)
            _ensure_secret_redactor_on_handlers()
            raise
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        file_handler.addFilter(SecretRedactor())
        root_logger.addHandler(file_handler)

    logging.getLogger("dsyncpay").setLevel(log_level)

    logging.info("Logging configured - Level: %s, File: %s, Colors: %s", level, log_file or "None", use_colors)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the specified name."""
    if not name or not isinstance(name, str) or not name.strip():
        raise ValueError("Logger name must be a non-empty string")
    return logging.getLogger(name)


def set_log_level(level: str, logger_name: str | None = None) -> None:
    """Set the log level for a specific logger or the root logger."""
    level = level.upper()
    if level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        logging.warning("Invalid log level %s, defaulting to INFO", level)
        level = "INFO"

    logging.getLogger(logger_name).setLevel(getattr(logging, level))
    logging.info("Set log level for %s to %s", logger_name or "root", level)


def setup_default_logging() -> None:
    """Set up default logging configuration for dsyncpay."""
    if logging.getLogger().handlers:
        _ensure_secret_redactor_on_handlers()
        return

    try:
        setup_logging(
            level=os.environ.get("DSyncPay_LogLevel", "INFO"),
            log_file=os.environ.get("DSyncPay_LogFile"),
            use_colors=os.environ.get("DSyncPay_LogColors", "true").lower() == "true",
        )
    except Exception as e:
        root_logger = logging.getLogger()
        root_logger.handlers = []
        setup_logging(level="INFO", log_file=None, use_colors=False, clear_handlers=True)
        logging.error("Failed to configure logging: %s. Using minimal console logging.", e)


setup_default_logging()
