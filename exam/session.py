"""
Exam Session Controller - Timed question-flow state machine.

States: loading -> active -> submitted (terminal), or loading -> error when
the exam cannot be loaded. The countdown ticks once per second on a
single-shot timer; reaching zero takes the same path as an explicit submit.
Nothing outside this controller can change the remaining time or end the
exam.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from shared_utils.exceptions import ExamLoadError
from .models import Exam, ExamResult, ExamState, Question
from .provider import ExamProvider
from .scoring import calculate_exam_result


TICK_SECONDS = 1.0


class ExamSessionController:
    """Drives one exam attempt."""

    def __init__(self, provider: ExamProvider, scheduler=None):
        """
        Initialize the controller.

        Args:
            provider: Source of exam content
            scheduler: Object providing call_later(); defaults to the running loop
        """
        self.provider = provider
        self._scheduler = scheduler

        self.state = ExamState.LOADING
        self.exam: Optional[Exam] = None
        self.error: Optional[str] = None
        self.current_question_index = 0
        self.answers: Dict[int, int] = {}
        self.time_remaining = 0
        self.result: Optional[ExamResult] = None

        self.submitted_callbacks: List[Callable[[ExamResult], None]] = []
        self.tick_callbacks: List[Callable[[int], None]] = []

        self._timer_handle = None
        self.logger = logging.getLogger(__name__)

    @property
    def scheduler(self):
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        return self._scheduler

    @property
    def is_active(self) -> bool:
        return self.state is ExamState.ACTIVE

    @property
    def is_submitted(self) -> bool:
        return self.state is ExamState.SUBMITTED

    @property
    def current_question(self) -> Optional[Question]:
        if self.exam is None or not self.exam.questions:
            return None
        return self.exam.questions[self.current_question_index]

    async def load(self, exam_id: Any) -> bool:
        """
        Fetch the exam and start it.

        Returns:
            True if the exam is now active; on failure the controller is in
            the error state with ``error`` set
        """
        loop = asyncio.get_running_loop()
        try:
            exam = await loop.run_in_executor(None, self.provider.get_exam, exam_id)
        except ExamLoadError as e:
            self._fail(str(e))
            return False

        if exam is None:
            self._fail(f"Exam {exam_id} not found")
            return False

        return self.begin(exam)

    def _fail(self, message: str) -> None:
        self.state = ExamState.ERROR
        self.error = message
        self.logger.error(f"Exam could not be loaded: {message}")

    def begin(self, exam: Exam) -> bool:
        """Start an already loaded exam and its countdown."""
        if self.state is not ExamState.LOADING:
            self.logger.warning(f"Cannot begin exam in state {self.state.value}")
            return False

        self.exam = exam
        self.current_question_index = 0
        self.answers = {}
        self.time_remaining = exam.time_limit_seconds
        self.state = ExamState.ACTIVE
        self.logger.info(
            f"Exam {exam.id} started: {exam.question_count} questions, "
            f"{self.time_remaining}s, passing score {exam.passing_score}%"
        )
        self._schedule_tick()
        return True

    def _schedule_tick(self) -> None:
        self._timer_handle = self.scheduler.call_later(TICK_SECONDS, self._tick)

    def _tick(self) -> None:
        self._timer_handle = None
        if self.state is not ExamState.ACTIVE:
            return

        self.time_remaining = max(0, self.time_remaining - 1)
        for callback in self.tick_callbacks:
            try:
                callback(self.time_remaining)
            except Exception as e:
                self.logger.error(f"Error in tick callback: {e}")

        if self.time_remaining == 0:
            self.logger.info("Time is up, submitting exam")
            self.submit(reason="timeout")
            return

        self._schedule_tick()

    def select_answer(self, choice_index: int) -> bool:
        """
        Record a choice for the current question, replacing any earlier one.

        Returns:
            True if the answer was recorded
        """
        if self.state is not ExamState.ACTIVE:
            return False

        question = self.current_question
        if question is None:
            return False
        if not 0 <= choice_index < len(question.choices):
            self.logger.warning(f"Ignoring out-of-range choice {choice_index} for question {question.id}")
            return False

        self.answers[question.id] = choice_index
        return True

    def next(self) -> bool:
        if self.state is not ExamState.ACTIVE or self.exam is None:
            return False
        if self.current_question_index >= len(self.exam.questions) - 1:
            return False
        self.current_question_index += 1
        return True

    def previous(self) -> bool:
        if self.state is not ExamState.ACTIVE or self.current_question_index == 0:
            return False
        self.current_question_index -= 1
        return True

    def submit(self, reason: str = "manual") -> Optional[ExamResult]:
        """
        End the exam and score it. Only the first call has an effect.

        Args:
            reason: 'manual' for a user submit, 'timeout' when time ran out

        Returns:
            The result on the first call, None afterwards
        """
        if self.state is not ExamState.ACTIVE:
            return None

        self.state = ExamState.SUBMITTED
        self._cancel_timer()

        time_spent = self.exam.time_limit_seconds - self.time_remaining
        self.result = calculate_exam_result(
            self.exam.questions,
            self.answers,
            self.exam.passing_score,
            time_spent=time_spent,
            reason=reason,
        )
        self.logger.info(
            f"Exam {self.exam.id} submitted ({reason}): "
            f"{self.result.score}/{self.result.total_questions}, passed={self.result.passed}"
        )

        for callback in self.submitted_callbacks:
            try:
                callback(self.result)
            except Exception as e:
                self.logger.error(f"Error in submission callback: {e}")

        return self.result

    def _cancel_timer(self) -> None:
        if self._timer_handle is not None:
            self._timer_handle.cancel()
            self._timer_handle = None

    def teardown(self) -> None:
        """Stop the countdown when the exam page is left; answers are kept."""
        self._cancel_timer()

    def progress(self) -> Dict[str, int]:
        """Current question (1-based), total questions and answered count."""
        total = self.exam.question_count if self.exam else 0
        return {
            'current': self.current_question_index + 1 if total else 0,
            'total': total,
            'answered': len(self.answers),
        }

    def snapshot(self) -> Dict[str, Any]:
        """Observable exam state."""
        return {
            'state': self.state.value,
            'current_question_index': self.current_question_index,
            'answers': dict(self.answers),
            'time_remaining': self.time_remaining,
            'error': self.error,
        }
