"""
Common utility functions shared across the application.

This module provides basic utilities for timestamps, identifiers, logging
and JSON handling that are used by the proctoring engine, the capture loop
and the exam session.
"""

import json
import logging
import os
import time
import uuid
from datetime import datetime
from typing import Any, Optional


def get_timestamp() -> datetime:
    """
    Get current timestamp as datetime object.

    Returns:
        Current datetime with microsecond precision
    """
    return datetime.now()


def get_timestamp_ms() -> int:
    """
    Get current wall-clock time as integer milliseconds since the epoch.

    Returns:
        Milliseconds since the Unix epoch, the unit used on the wire
    """
    return int(time.time() * 1000)


def get_timestamp_string(dt: Optional[datetime] = None) -> str:
    """
    Get timestamp as ISO format string.

    Args:
        dt: Datetime object to format, uses current time if None

    Returns:
        ISO format timestamp string
    """
    if dt is None:
        dt = get_timestamp()
    return dt.isoformat()


def generate_unique_id() -> str:
    """
    Generate a unique identifier.

    Returns:
        UUID4 string for general identification purposes
    """
    return str(uuid.uuid4())


def setup_logging(
    name: str,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging configuration for a component.

    Args:
        name: Logger name (empty string configures the root logger)
        level: Logging level (default: INFO)
        log_file: Optional log file path
        format_string: Optional custom format string

    Returns:
        Configured logger instance
    """
    if format_string is None:
        format_string = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(format_string))
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(format_string))
        logger.addHandler(file_handler)

    return logger


def safe_json_loads(json_string: Any, default: Any = None) -> Any:
    """
    Safely parse JSON string with fallback.

    Args:
        json_string: JSON string (or bytes) to parse
        default: Default value to return on parse error

    Returns:
        Parsed JSON object or default value
    """
    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def clamp(value: float, min_value: float, max_value: float) -> float:
    """Clamp a value between minimum and maximum bounds."""
    return max(min_value, min(value, max_value))
