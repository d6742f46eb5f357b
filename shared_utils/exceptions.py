"""
Exception taxonomy for the proctoring client.

Proctoring-side errors never cross into the exam session; they are caught at
the proctoring boundary and turned into state changes and log lines.
"""


class ProctoringError(Exception):
    """Base class for all proctoring client errors."""


class CameraPermissionError(ProctoringError):
    """Camera access was denied or the device could not be opened."""


class TransportError(ProctoringError):
    """The verification channel could not be opened or used."""


class InvalidPayloadError(ProctoringError, ValueError):
    """An inbound or outbound payload does not follow the wire contract."""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = list(errors or [])


class ExamLoadError(ProctoringError):
    """Exam content could not be fetched or is malformed."""
