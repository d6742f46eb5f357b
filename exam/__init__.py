"""
Exam Package - Exam content, scoring and the timed exam session.
"""

from .models import Exam, ExamResult, ExamState, Question, UNANSWERED
from .provider import ApiExamProvider, ExamProvider, MockExamProvider
from .session import ExamSessionController

__all__ = [
    'Exam',
    'ExamResult',
    'ExamState',
    'Question',
    'UNANSWERED',
    'ApiExamProvider',
    'ExamProvider',
    'MockExamProvider',
    'ExamSessionController'
]
