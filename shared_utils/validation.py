"""
Validation utilities for the proctoring client.

This module provides validation functions for the verification wire
contract, alert records, exam payloads and configuration values.
"""

from typing import Any, Dict, List, Tuple


VALID_ALERT_TYPES = ['no_face', 'multiple_faces', 'face_mismatch', 'error']
VALID_SEVERITIES = ['low', 'medium', 'high']


def _is_int(value: Any) -> bool:
    # bool is a subclass of int and is never a valid count
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_verification_payload(payload: Any) -> Tuple[bool, List[str]]:
    """
    Validate an inbound verification message.

    Args:
        payload: Decoded JSON value received from the verification service

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if not isinstance(payload, dict):
        return False, [f"Expected JSON object, got {type(payload).__name__}"]

    errors = []

    for field in ('match', 'multiple_faces', 'face_count'):
        if field not in payload:
            errors.append(f"Missing required field: {field}")

    for field in ('match', 'multiple_faces'):
        if field in payload and not isinstance(payload[field], bool):
            errors.append(f"Invalid {field}: {payload[field]!r}")

    if 'face_count' in payload:
        face_count = payload['face_count']
        if not _is_int(face_count) or face_count < 0:
            errors.append(f"Invalid face_count: {face_count!r}")

    if payload.get('error') is not None and not isinstance(payload['error'], str):
        errors.append(f"Invalid error: {payload['error']!r}")

    if 'type' in payload and payload['type'] is not None and not isinstance(payload['type'], str):
        errors.append(f"Invalid type: {payload['type']!r}")

    if 'timestamp' in payload and payload['timestamp'] is not None and not _is_number(payload['timestamp']):
        errors.append(f"Invalid timestamp: {payload['timestamp']!r}")

    return len(errors) == 0, errors


def validate_alert_data(alert_dict: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate alert data structure.

    Args:
        alert_dict: Alert data dictionary in wire form

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    required_fields = ['id', 'type', 'message', 'timestamp', 'severity']
    for field in required_fields:
        if field not in alert_dict:
            errors.append(f"Missing required field: {field}")

    if 'type' in alert_dict and alert_dict['type'] not in VALID_ALERT_TYPES:
        errors.append(f"Invalid alert type: {alert_dict['type']}")

    if 'severity' in alert_dict and alert_dict['severity'] not in VALID_SEVERITIES:
        errors.append(f"Invalid severity: {alert_dict['severity']}")

    if 'timestamp' in alert_dict and not _is_number(alert_dict['timestamp']):
        errors.append(f"Invalid timestamp: {alert_dict['timestamp']!r}")

    return len(errors) == 0, errors


def validate_question_data(question: Any) -> List[str]:
    """Return the list of problems found in a single question payload."""
    if not isinstance(question, dict):
        return [f"Question must be an object, got {type(question).__name__}"]

    errors = []
    question_id = question.get('id')
    if not _is_int(question_id):
        errors.append(f"Invalid question id: {question_id!r}")

    choices = question.get('choices')
    if not isinstance(choices, list) or not choices:
        errors.append(f"Question {question_id}: choices must be a non-empty list")
        return errors

    answer = question.get('answer')
    if not _is_int(answer) or not 0 <= answer < len(choices):
        errors.append(f"Question {question_id}: answer index out of range: {answer!r}")

    return errors


def validate_exam_data(exam_dict: Any) -> Tuple[bool, List[str]]:
    """
    Validate an exam payload returned by the exams endpoint.

    Args:
        exam_dict: Decoded JSON exam

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if not isinstance(exam_dict, dict):
        return False, [f"Expected JSON object, got {type(exam_dict).__name__}"]

    errors = []
    for field in ('id', 'title', 'questions'):
        if field not in exam_dict:
            errors.append(f"Missing required field: {field}")

    questions = exam_dict.get('questions')
    if 'questions' in exam_dict:
        if not isinstance(questions, list) or not questions:
            errors.append("Exam must contain at least one question")
        else:
            seen_ids = set()
            for question in questions:
                errors.extend(validate_question_data(question))
                if isinstance(question, dict):
                    if question.get('id') in seen_ids:
                        errors.append(f"Duplicate question id: {question.get('id')}")
                    seen_ids.add(question.get('id'))

    time_limit = exam_dict.get('timeLimit')
    if time_limit is not None and (not _is_number(time_limit) or time_limit <= 0):
        errors.append(f"Invalid timeLimit: {time_limit!r}")

    passing_score = exam_dict.get('passingScore')
    if passing_score is not None and (not _is_number(passing_score) or not 0 <= passing_score <= 100):
        errors.append(f"Invalid passingScore: {passing_score!r}")

    return len(errors) == 0, errors


def validate_configuration(config_dict: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate proctoring configuration data.

    Args:
        config_dict: Configuration data dictionary

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    positive_numbers = [
        'alert_dwell_seconds', 'preview_size', 'preview_fps',
        'frame_width', 'frame_height', 'request_timeout_seconds',
        'default_time_limit_minutes'
    ]
    for field in positive_numbers:
        if field in config_dict:
            value = config_dict[field]
            if not _is_number(value) or value <= 0:
                errors.append(f"Invalid {field}: {value}")

    non_negative = ['capture_min_delay_ms', 'capture_jitter_ms', 'notification_cooldown_seconds', 'camera_index']
    for field in non_negative:
        if field in config_dict:
            value = config_dict[field]
            if not _is_number(value) or value < 0:
                errors.append(f"Invalid {field}: {value}")

    if 'default_passing_score' in config_dict:
        value = config_dict['default_passing_score']
        if not _is_number(value) or not 0 <= value <= 100:
            errors.append(f"Invalid default_passing_score: {value}")

    for field in ('ws_url', 'api_base_url'):
        if field in config_dict and not isinstance(config_dict[field], str):
            errors.append(f"Invalid {field}: {config_dict[field]!r}")

    ws_url = config_dict.get('ws_url')
    if isinstance(ws_url, str) and not ws_url.startswith(('ws://', 'wss://')):
        errors.append(f"ws_url must use ws:// or wss://: {ws_url}")

    return len(errors) == 0, errors
