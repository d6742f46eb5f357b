"""
Exam scoring, grading and time display helpers.
"""

import math
from typing import Dict, List

from .models import UNANSWERED, AnswerRecord, ExamResult, Question


def calculate_exam_result(
    questions: List[Question],
    answers: Dict[int, int],
    passing_score: float = 60,
    time_spent: int = 0,
    reason: str = "manual"
) -> ExamResult:
    """
    Score an exam against the recorded answers.

    Args:
        questions: Exam questions in display order
        answers: Mapping of question id to selected choice index; missing
            ids count as unanswered
        passing_score: Minimum percentage needed to pass
        time_spent: Seconds spent on the exam
        reason: What ended the exam ('manual' or 'timeout')

    Returns:
        ExamResult with one AnswerRecord per question
    """
    records = []
    score = 0
    for question in questions:
        selected = answers.get(question.id, UNANSWERED)
        correct = selected == question.answer
        if correct:
            score += 1
        records.append(AnswerRecord(question_id=question.id, selected_choice=selected, correct=correct))

    total = len(questions)
    # An exam with no questions cannot be passed
    passed = total > 0 and (score / total * 100) >= passing_score

    return ExamResult(
        score=score,
        total_questions=total,
        passed=passed,
        answers=records,
        time_spent=time_spent,
        reason=reason,
    )


def calculate_percentage(score: int, total: int) -> int:
    """Percentage score rounded half up; 0 when there are no questions."""
    if total == 0:
        return 0
    return int(math.floor(score / total * 100 + 0.5))


def get_letter_grade(percentage: float) -> str:
    if percentage >= 90:
        return "A"
    if percentage >= 80:
        return "B"
    if percentage >= 70:
        return "C"
    if percentage >= 60:
        return "D"
    return "F"


def is_passing(score: int, total: int, passing_score: float = 60) -> bool:
    return calculate_percentage(score, total) >= passing_score


def get_exam_feedback(percentage: float, passed: bool) -> str:
    """Short feedback message for the results screen."""
    if passed:
        if percentage >= 95:
            return "Outstanding! Perfect score!"
        if percentage >= 90:
            return "Excellent work!"
        if percentage >= 80:
            return "Great job!"
        if percentage >= 70:
            return "Good performance!"
        return "You passed! Well done!"

    if percentage >= 50:
        return "Close! Review the material and try again."
    if percentage >= 30:
        return "Keep studying. You can do better!"
    return "More practice needed. Review the course content."


def minutes_to_seconds(minutes: float) -> int:
    return int(minutes * 60)


def format_time(seconds: int) -> str:
    """
    Format seconds as M:SS.

    Examples:
        330 -> "5:30", 905 -> "15:05"
    """
    minutes, remaining = divmod(int(seconds), 60)
    return f"{minutes}:{remaining:02d}"


def format_duration(seconds: int) -> str:
    """Human readable duration such as "1h 30m", "45m" or "30s"."""
    seconds = int(seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds % 60}s"


def is_time_running_low(seconds: int) -> bool:
    """Less than five minutes left."""
    return seconds < 300


def is_time_critical(seconds: int) -> bool:
    """Less than one minute left."""
    return seconds < 60
