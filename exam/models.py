"""
Exam Models - Data models for exams, answers and results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from shared_utils.common import get_timestamp_string
from shared_utils.exceptions import ExamLoadError
from shared_utils.validation import validate_exam_data


# Recorded for questions the student never answered
UNANSWERED = -1

DEFAULT_TIME_LIMIT_MINUTES = 30
DEFAULT_PASSING_SCORE = 60
DEFAULT_COURSE_NAME = "Unknown Course"


class ExamState(Enum):
    """States of the exam session state machine."""
    LOADING = "loading"
    ACTIVE = "active"
    SUBMITTED = "submitted"
    ERROR = "error"


@dataclass
class Question:
    """A multiple-choice question; ``answer`` is the index of the correct choice."""
    id: int
    context: str
    choices: List[str]
    answer: int
    explanation: Optional[str] = None
    exam_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Question':
        return cls(
            id=data['id'],
            context=data.get('context', ''),
            choices=list(data['choices']),
            answer=data['answer'],
            explanation=data.get('explanation'),
            exam_id=data.get('examId'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'context': self.context,
            'choices': list(self.choices),
            'answer': self.answer,
            'explanation': self.explanation,
            'examId': self.exam_id,
        }


@dataclass
class Exam:
    """Exam content as delivered by an exam provider."""
    id: int
    title: str
    questions: List[Question]
    course_id: Optional[int] = None
    course_name: str = DEFAULT_COURSE_NAME
    description: Optional[str] = None
    time_limit_minutes: float = DEFAULT_TIME_LIMIT_MINUTES
    passing_score: float = DEFAULT_PASSING_SCORE

    @property
    def time_limit_seconds(self) -> int:
        return int(self.time_limit_minutes * 60)

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @classmethod
    def from_dict(
        cls,
        data: Any,
        default_time_limit: float = DEFAULT_TIME_LIMIT_MINUTES,
        default_passing_score: float = DEFAULT_PASSING_SCORE
    ) -> 'Exam':
        """
        Build an exam from a JSON payload.

        Args:
            data: Decoded exam object (camelCase keys)
            default_time_limit: Used when ``timeLimit`` is missing
            default_passing_score: Used when ``passingScore`` is missing

        Raises:
            ExamLoadError: If the payload is not a usable exam
        """
        is_valid, errors = validate_exam_data(data)
        if not is_valid:
            raise ExamLoadError(f"Invalid exam data: {'; '.join(errors)}")

        time_limit = data.get('timeLimit')
        passing_score = data.get('passingScore')
        return cls(
            id=data['id'],
            title=data['title'],
            questions=[Question.from_dict(q) for q in data['questions']],
            course_id=data.get('courseId'),
            course_name=data.get('courseName') or DEFAULT_COURSE_NAME,
            description=data.get('description'),
            time_limit_minutes=time_limit if time_limit is not None else default_time_limit,
            passing_score=passing_score if passing_score is not None else default_passing_score,
        )


@dataclass
class AnswerRecord:
    """Outcome of a single question in a submitted exam."""
    question_id: int
    selected_choice: int
    correct: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'questionId': self.question_id,
            'selectedChoice': self.selected_choice,
            'correct': self.correct,
        }


@dataclass
class ExamResult:
    """Result of a submitted exam."""
    score: int
    total_questions: int
    passed: bool
    answers: List[AnswerRecord] = field(default_factory=list)
    time_spent: int = 0
    reason: str = "manual"
    submitted_at: str = field(default_factory=get_timestamp_string)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'score': self.score,
            'totalQuestions': self.total_questions,
            'passed': self.passed,
            'answers': [answer.to_dict() for answer in self.answers],
            'timeSpent': self.time_spent,
            'reason': self.reason,
            'submittedAt': self.submitted_at,
        }

    def to_submission(self, exam_id: Any) -> Dict[str, Any]:
        """Build the body posted to the exam submissions endpoint."""
        return {
            'examId': exam_id,
            'answers': [
                {'questionId': answer.question_id, 'selectedChoice': answer.selected_choice}
                for answer in self.answers
            ],
            'timeSpent': self.time_spent,
        }
