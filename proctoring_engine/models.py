"""
Proctoring Engine Models - Data models for verification traffic and integrity alerts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from shared_utils.common import generate_unique_id, get_timestamp_ms
from shared_utils.exceptions import InvalidPayloadError
from shared_utils.validation import validate_verification_payload


class AlertType(Enum):
    """Enumeration of integrity alert types."""
    NO_FACE = "no_face"
    MULTIPLE_FACES = "multiple_faces"
    FACE_MISMATCH = "face_mismatch"
    ERROR = "error"


class AlertSeverity(Enum):
    """Enumeration of alert severities."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PermissionState(Enum):
    """Camera permission state of a capture session."""
    UNREQUESTED = "unrequested"
    GRANTED = "granted"
    DENIED = "denied"


# Severity is a pure function of the alert type.
ALERT_SEVERITY: Dict[AlertType, AlertSeverity] = {
    AlertType.NO_FACE: AlertSeverity.HIGH,
    AlertType.MULTIPLE_FACES: AlertSeverity.HIGH,
    AlertType.FACE_MISMATCH: AlertSeverity.MEDIUM,
    AlertType.ERROR: AlertSeverity.MEDIUM,
}


def severity_for(alert_type: AlertType) -> AlertSeverity:
    """Return the severity assigned to an alert type."""
    return ALERT_SEVERITY[alert_type]


@dataclass
class VerificationResponse:
    """
    Parsed inbound message from the face-verification service.

    Transient: consumed by the interpreter as soon as it arrives.
    """
    match: bool
    multiple_faces: bool
    face_count: int
    error: Optional[str] = None
    type: str = ""
    timestamp: float = 0.0

    @classmethod
    def from_dict(cls, payload: Any) -> 'VerificationResponse':
        """
        Build a response from a decoded JSON payload.

        Raises:
            InvalidPayloadError: If the payload does not follow the wire contract
        """
        is_valid, errors = validate_verification_payload(payload)
        if not is_valid:
            raise InvalidPayloadError(f"Invalid verification response: {'; '.join(errors)}", errors)

        return cls(
            match=payload['match'],
            multiple_faces=payload['multiple_faces'],
            face_count=payload['face_count'],
            error=payload.get('error') or None,
            type=payload.get('type') or "",
            timestamp=payload.get('timestamp') or 0.0,
        )


@dataclass(frozen=True)
class ReferenceImage:
    """The student's enrollment photo, encoded once as a data URL."""
    data_url: str
    mime_type: str
    source: str = ""


@dataclass(frozen=True)
class FrameEmission:
    """
    A single outbound verification request.

    ``sequence`` is a local diagnostic counter; it is not part of the wire
    message because the service never echoes it back.
    """
    reference_image: str
    frame_image: str
    sequence: int = 0

    def to_wire(self) -> Dict[str, str]:
        """Convert to the JSON object sent to the verification service."""
        return {
            'reference_image': self.reference_image,
            'frame_image': self.frame_image,
        }


@dataclass
class AlertContext:
    """Identity fields stamped onto every alert of a proctoring session."""
    student_id: Optional[str] = None
    student_name: Optional[str] = None
    exam_id: Optional[str] = None


@dataclass
class SuspiciousAlert:
    """
    Durable integrity-event record.

    Severity is derived from the alert type and cannot be set independently.
    """
    type: AlertType
    message: str
    timestamp: int = field(default_factory=get_timestamp_ms)
    alert_id: str = field(default_factory=generate_unique_id)
    student_id: Optional[str] = None
    student_name: Optional[str] = None
    exam_id: Optional[str] = None

    @property
    def severity(self) -> AlertSeverity:
        return severity_for(self.type)

    @property
    def id(self) -> str:
        return self.alert_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape used by dashboards and the reporting sink."""
        data = {
            'id': self.alert_id,
            'type': self.type.value,
            'message': self.message,
            'timestamp': self.timestamp,
            'severity': self.severity.value,
        }
        if self.student_id is not None:
            data['studentId'] = self.student_id
        if self.student_name is not None:
            data['studentName'] = self.student_name
        if self.exam_id is not None:
            data['examId'] = self.exam_id
        return data

    def __str__(self) -> str:
        """String representation."""
        return f"SuspiciousAlert({self.type.value}, {self.severity.value}, {self.message!r})"
