"""
Exam data providers.

MockExamProvider serves a built-in quiz for offline use. ApiExamProvider
loads exams from the REST backend and posts submissions back to it.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from shared_utils.exceptions import ExamLoadError
from .models import DEFAULT_PASSING_SCORE, DEFAULT_TIME_LIMIT_MINUTES, Exam, ExamResult


class ExamProvider(ABC):
    """
    Abstract base class for exam content sources.
    """

    @abstractmethod
    def get_exam(self, exam_id: Any) -> Exam:
        """
        Load an exam.

        Blocking; callers run it off the event loop.

        Raises:
            ExamLoadError: If the exam cannot be fetched or is malformed
        """
        pass

    def submit_exam(self, exam_id: Any, result: ExamResult) -> bool:
        """Deliver a submission. Best-effort; returns False on failure."""
        return False


MOCK_QUESTIONS: List[Dict[str, Any]] = [
    {
        'id': 1,
        'context': "What does CPU stand for?",
        'choices': [
            "Central Processing Unit",
            "Computer Personal Unit",
            "Central Program Unit",
            "Computer Processing Unit",
        ],
        'answer': 0,
        'explanation': "CPU stands for Central Processing Unit, the component that performs most of the processing inside a computer.",
    },
    {
        'id': 2,
        'context': "Which of the following is a programming language primarily used for web development?",
        'choices': ["SQL", "CSS", "JavaScript", "Assembly"],
        'answer': 2,
        'explanation': "JavaScript is used for web development on both the client side and the server side.",
    },
    {
        'id': 3,
        'context': "What is the time complexity of binary search in a sorted array?",
        'choices': ["O(n)", "O(log n)", "O(n²)", "O(1)"],
        'answer': 1,
        'explanation': "Binary search halves the remaining elements at every step.",
    },
    {
        'id': 4,
        'context': "Which data structure follows the LIFO (Last-In-First-Out) principle?",
        'choices': ["Queue", "Stack", "Array", "Linked List"],
        'answer': 1,
        'explanation': "The last element pushed onto a stack is the first one removed.",
    },
    {
        'id': 5,
        'context': "In object-oriented programming, what is encapsulation?",
        'choices': [
            "Creating multiple instances of a class",
            "Hiding internal implementation details",
            "Inheriting from a parent class",
            "Overriding methods in a subclass",
        ],
        'answer': 1,
        'explanation': "Encapsulation hides implementation details and exposes only the necessary interface.",
    },
]


class MockExamProvider(ExamProvider):
    """Serves the built-in Computer Science Fundamentals quiz for any exam id."""

    def __init__(
        self,
        time_limit_minutes: float = DEFAULT_TIME_LIMIT_MINUTES,
        passing_score: float = DEFAULT_PASSING_SCORE
    ):
        self.time_limit_minutes = time_limit_minutes
        self.passing_score = passing_score
        self.submissions: List[Dict[str, Any]] = []
        self.logger = logging.getLogger(__name__)

    def get_exam(self, exam_id: Any) -> Exam:
        questions = copy.deepcopy(MOCK_QUESTIONS)
        for question in questions:
            question['examId'] = exam_id

        return Exam.from_dict({
            'id': exam_id,
            'courseId': 1,
            'courseName': "Introduction to Computer Science",
            'title': "Computer Science Fundamentals Quiz",
            'description': "Test your understanding of basic computer science concepts.",
            'timeLimit': self.time_limit_minutes,
            'passingScore': self.passing_score,
            'questions': questions,
        })

    def submit_exam(self, exam_id: Any, result: ExamResult) -> bool:
        self.submissions.append(result.to_submission(exam_id))
        self.logger.info(f"Mock submission recorded for exam {exam_id}: {result.score}/{result.total_questions}")
        return True


class ApiExamProvider(ExamProvider):
    """Loads exams from ``{api_base_url}/exams/{id}``."""

    def __init__(
        self,
        api_base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
        course_name: Optional[str] = None,
        default_time_limit: float = DEFAULT_TIME_LIMIT_MINUTES,
        default_passing_score: float = DEFAULT_PASSING_SCORE
    ):
        """
        Initialize the provider.

        Args:
            api_base_url: Base URL of the REST API, e.g. http://localhost:8000/api
            session: Optional requests session
            timeout: Request timeout in seconds
            course_name: Course name shown with the exam; the exams endpoint
                does not return one
            default_time_limit: Minutes used when the API omits timeLimit
            default_passing_score: Percentage used when the API omits passingScore
        """
        self.api_base_url = api_base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.course_name = course_name
        self.default_time_limit = default_time_limit
        self.default_passing_score = default_passing_score
        self.logger = logging.getLogger(__name__)

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.api_base_url}{endpoint}"
        self.logger.info(f"Making API request to: {url}")
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        response.raise_for_status()
        return response.json()

    def get_exam(self, exam_id: Any) -> Exam:
        try:
            data = self._request('GET', f"/exams/{exam_id}")
        except (requests.RequestException, ValueError) as e:
            self.logger.error(f"Failed to load exam {exam_id}: {e}")
            raise ExamLoadError(f"Failed to load exam {exam_id}: {e}") from e

        if isinstance(data, dict) and self.course_name and not data.get('courseName'):
            data = dict(data, courseName=self.course_name)

        return Exam.from_dict(
            data,
            default_time_limit=self.default_time_limit,
            default_passing_score=self.default_passing_score,
        )

    def submit_exam(self, exam_id: Any, result: ExamResult) -> bool:
        try:
            self._request('POST', "/exam-submissions", json=result.to_submission(exam_id))
            self.logger.info(f"Submitted exam {exam_id}")
            return True
        except (requests.RequestException, ValueError) as e:
            self.logger.error(f"Failed to submit exam {exam_id}: {e}")
            return False
