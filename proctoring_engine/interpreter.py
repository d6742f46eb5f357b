"""
Verification Interpreter - Classifies verification responses into integrity alerts.

Classification is total and deterministic. Rules are evaluated in a fixed
priority order and the first match wins, so a single response can never
produce more than one alert:

1. no face in the frame                      -> no_face (high)
2. multiple faces flagged or counted         -> multiple_faces (high)
3. exactly one face that does not match      -> face_mismatch (medium)
4. server reported an error                  -> error (medium)
5. exactly one matching face                 -> no alert
"""

import logging
from collections import Counter
from typing import Callable, Dict, List, Optional

from shared_utils.common import generate_unique_id, get_timestamp_ms
from .models import AlertContext, AlertType, SuspiciousAlert, VerificationResponse


NO_FACE_MESSAGE = "No face detected in the frame"
FACE_MISMATCH_MESSAGE = "Face does not match reference image"


def classify_response(response: VerificationResponse) -> Optional[AlertType]:
    """
    Return the alert type a response maps to, or None on the success path.

    Args:
        response: Parsed verification response

    Returns:
        The matching AlertType, or None when exactly one matching face was seen
    """
    if response.face_count == 0:
        return AlertType.NO_FACE
    if response.multiple_faces or response.face_count > 1:
        return AlertType.MULTIPLE_FACES
    if not response.match and response.face_count == 1:
        return AlertType.FACE_MISMATCH
    if response.error:
        return AlertType.ERROR
    return None


def alert_message(alert_type: AlertType, response: VerificationResponse) -> str:
    """Build the human readable message for an alert."""
    if alert_type is AlertType.NO_FACE:
        return NO_FACE_MESSAGE
    if alert_type is AlertType.MULTIPLE_FACES:
        if response.face_count > 1:
            return f"Multiple faces detected ({response.face_count} faces)"
        return "Multiple faces detected"
    if alert_type is AlertType.FACE_MISMATCH:
        return FACE_MISMATCH_MESSAGE
    return response.error or "Verification error"


class VerificationInterpreter:
    """
    Turns verification responses into at most one SuspiciousAlert each.
    """

    def __init__(
        self,
        context: Optional[AlertContext] = None,
        clock: Callable[[], int] = get_timestamp_ms,
        id_factory: Callable[[], str] = generate_unique_id
    ):
        """
        Initialize the interpreter.

        Args:
            context: Identity fields copied onto every alert
            clock: Returns the alert timestamp in epoch milliseconds
            id_factory: Returns a unique alert id
        """
        self.context = context or AlertContext()
        self.clock = clock
        self.id_factory = id_factory
        self.responses_processed = 0
        self.alert_counts: Counter = Counter()
        self.logger = logging.getLogger(__name__)

    def process_response(self, response: VerificationResponse) -> Optional[SuspiciousAlert]:
        """Classify a single response and build the alert it maps to, if any."""
        self.responses_processed += 1

        alert_type = classify_response(response)
        if alert_type is None:
            self.logger.debug("Verification passed: single matching face")
            return None

        alert = SuspiciousAlert(
            type=alert_type,
            message=alert_message(alert_type, response),
            timestamp=self.clock(),
            alert_id=self.id_factory(),
            student_id=self.context.student_id,
            student_name=self.context.student_name,
            exam_id=self.context.exam_id,
        )
        self.alert_counts[alert_type.value] += 1
        self.logger.info(f"Integrity alert {alert.alert_id}: {alert_type.value} ({alert.message})")
        return alert

    def process_batch(self, responses: List[VerificationResponse]) -> List[SuspiciousAlert]:
        """Process a batch of responses."""
        results = []
        for response in responses:
            alert = self.process_response(response)
            if alert:
                results.append(alert)
        return results

    def get_statistics(self) -> Dict[str, object]:
        """Return processing counters."""
        return {
            'responses_processed': self.responses_processed,
            'alerts_by_type': dict(self.alert_counts),
        }
