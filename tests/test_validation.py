"""
Tests for payload and configuration validation.
"""

from shared_utils.validation import (
    validate_alert_data,
    validate_configuration,
    validate_exam_data,
    validate_verification_payload,
)
from proctoring_engine.models import AlertType, SuspiciousAlert


def test_verification_payload():
    assert validate_verification_payload({'match': True, 'multiple_faces': False, 'face_count': 0}) == (True, [])

    is_valid, errors = validate_verification_payload({'match': 1, 'face_count': "2"})
    assert not is_valid
    assert "Missing required field: multiple_faces" in errors
    assert "Invalid match: 1" in errors
    assert "Invalid face_count: '2'" in errors


def test_alert_records_round_trip_through_validation():
    alert = SuspiciousAlert(type=AlertType.MULTIPLE_FACES, message="Multiple faces detected (2 faces)")
    assert validate_alert_data(alert.to_dict()) == (True, [])

    is_valid, errors = validate_alert_data({'id': "1", 'type': "gaze", 'message': "", 'timestamp': "now"})
    assert not is_valid
    assert len(errors) == 3


def test_exam_data():
    exam = {
        'id': 1, 'title': "Quiz",
        'questions': [{'id': 1, 'choices': ["a", "b"], 'answer': 1}],
    }
    assert validate_exam_data(exam) == (True, [])

    broken = {
        'id': 1, 'title': "Quiz", 'timeLimit': 0, 'passingScore': 101,
        'questions': [
            {'id': 1, 'choices': ["a", "b"], 'answer': 2},
            {'id': 1, 'choices': ["a"], 'answer': 0},
        ],
    }
    is_valid, errors = validate_exam_data(broken)
    assert not is_valid
    assert "Question 1: answer index out of range: 2" in errors
    assert "Duplicate question id: 1" in errors
    assert "Invalid timeLimit: 0" in errors
    assert "Invalid passingScore: 101" in errors


def test_configuration():
    assert validate_configuration({'ws_url': "wss://x/ws", 'capture_jitter_ms': 0}) == (True, [])

    is_valid, errors = validate_configuration({'ws_url': "https://x", 'alert_dwell_seconds': 0, 'camera_index': -1})
    assert not is_valid
    assert len(errors) == 3
