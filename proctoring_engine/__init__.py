"""
Proctoring Engine Package - Exam Proctoring Client

This package contains the verification transport, the response interpreter
and the alert aggregator. ProctoringSession lives in
``proctoring_engine.session`` and is imported from there.
"""

from .models import (
    AlertContext,
    AlertSeverity,
    AlertType,
    FrameEmission,
    PermissionState,
    ReferenceImage,
    SuspiciousAlert,
    VerificationResponse,
)
from .interpreter import VerificationInterpreter, classify_response
from .alerts import AlertAggregator, PreviewIndicator
from .transport import TransportChannel
from .config import ConfigurationService, ProctoringConfiguration

__all__ = [
    'AlertContext',
    'AlertSeverity',
    'AlertType',
    'FrameEmission',
    'PermissionState',
    'ReferenceImage',
    'SuspiciousAlert',
    'VerificationResponse',
    'VerificationInterpreter',
    'classify_response',
    'AlertAggregator',
    'PreviewIndicator',
    'TransportChannel',
    'ConfigurationService',
    'ProctoringConfiguration'
]
