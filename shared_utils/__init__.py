"""
Shared Utilities Package - Common utilities for the proctoring client.
"""

from .common import generate_unique_id, get_timestamp_ms, setup_logging
from .exceptions import (
    CameraPermissionError,
    ExamLoadError,
    InvalidPayloadError,
    ProctoringError,
    TransportError,
)

__all__ = [
    'generate_unique_id',
    'get_timestamp_ms',
    'setup_logging',
    'CameraPermissionError',
    'ExamLoadError',
    'InvalidPayloadError',
    'ProctoringError',
    'TransportError',
]
