"""
Logging configuration for the genbridge package.

This module provides logging configuration for the genbridge package:
- Configurable log levels
- File and console logging with rotation
- Redaction of credentials and truncation of inline image data before
  request/response bodies are logged
"""

import os
import sys
import copy
import logging
import logging.handlers
from typing import Dict, Any, Optional

# Keys whose values are never written to a log
SENSITIVE_KEYS = [
    "api_key", "apikey", "key", "secret", "password", "token", "auth",
    "authorization", "credential", "access_token", "refresh_token"
]

# Keys that hold inline image data in the supported wire formats
IMAGE_DATA_KEYS = ["data", "b64_json", "image"]

# Library loggers kept at WARNING unless genbridge itself logs at DEBUG
NOISY_LOGGERS = ["urllib3", "PIL"]


def configure_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: Optional[bool] = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5
) -> None:
    """
    Configure global logging settings.

    Unset arguments are read from the "logging" settings section.

    Args:
        level (str, optional): Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file (str, optional): Path to log file
        log_format (str, optional): Log message format
        log_to_console (bool): Whether to log to stderr
        log_to_file (bool, optional): Whether to log to a rotating file
        max_bytes (int): Maximum log file size before rotation
        backup_count (int): Number of backup log files to keep
    """
    from genbridge.core.config import get_config_value

    if level is None:
        level = get_config_value("logging.level", "INFO")

    if log_file is None:
        log_file = os.path.expanduser(get_config_value("logging.file", "genbridge.log"))

    if log_to_file is None:
        log_to_file = bool(get_config_value("logging.to_file", False))

    if log_format is None:
        log_format = get_config_value(
            "logging.format",
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    root_logger.setLevel(numeric_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if numeric_level <= logging.DEBUG else logging.WARNING)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_to_file and log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.

    Args:
        name (str): Logger name

    Returns:
        logging.Logger: Logger instance
    """
    return logging.getLogger(name)


def redact_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Redact sensitive information from data.

    Args:
        data (Dict[str, Any]): Data to redact

    Returns:
        Dict[str, Any]: Redacted data
    """
    redacted = data.copy()

    for key, value in redacted.items():
        if _is_sensitive(key):
            redacted[key] = "********"
        elif isinstance(value, dict):
            redacted[key] = redact_sensitive_data(value)
        elif isinstance(value, list):
            redacted[key] = [redact_sensitive_data(item) if isinstance(item, dict) else item for item in value]

    return redacted


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower()
    return any(sensitive_key == key_lower or sensitive_key in key_lower.split("_")
               for sensitive_key in SENSITIVE_KEYS)


def truncate_for_logging(data: Any, max_str_length: int = 100) -> Any:
    """
    Create a copy of a request or response body that is safe to log.

    Base64 image payloads (data URLs and inline data fields) are replaced by
    placeholders and other long strings are truncated.

    Args:
        data: The body to truncate (dict, list or primitive)
        max_str_length: Maximum length for string values

    Returns:
        A truncated deep copy of the data
    """
    truncated = copy.deepcopy(data)
    return _truncate_value(truncated, max_str_length)


def _truncate_value(value: Any, max_str_length: int, key: Optional[str] = None) -> Any:
    if isinstance(value, dict):
        for item_key in list(value.keys()):
            value[item_key] = _truncate_value(value[item_key], max_str_length, item_key)
        return value

    if isinstance(value, list):
        return [_truncate_value(item, max_str_length, key) for item in value]

    if isinstance(value, str):
        if value.startswith("data:image") and "," in value:
            header = value.split(",", 1)[0]
            return f"{header},<base64_data_truncated>"
        if key in IMAGE_DATA_KEYS and len(value) > max_str_length:
            return f"<base64_data_truncated ({len(value)} chars)>"
        if len(value) > max_str_length:
            return value[:max_str_length] + "...<truncated>"

    return value
