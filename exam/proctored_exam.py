"""
Proctored Exam - An exam session with proctoring running alongside.

The exam controller and the proctoring session only meet here, and only in
one direction: submitting the exam stops proctoring. Proctoring failures
end at this boundary as log lines and never reach the exam controller.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from proctoring_engine.session import ProctoringSession
from .models import ExamResult
from .session import ExamSessionController


class ProctoredExam:
    """Exam page orchestration."""

    def __init__(self, exam: ExamSessionController, proctoring: Optional[ProctoringSession] = None):
        """
        Args:
            exam: Exam session controller
            proctoring: Proctoring session, or None to run unproctored
        """
        self.exam = exam
        self.proctoring = proctoring
        self.submission_delivered: Optional[bool] = None

        self._proctoring_task: Optional[asyncio.Task] = None
        self._finalize_task: Optional[asyncio.Task] = None
        self._closed = False
        self.logger = logging.getLogger(__name__)

        self.exam.submitted_callbacks.append(self._on_submitted)

    async def start(self, exam_id: Any) -> bool:
        """
        Load the exam, then start proctoring in the background.

        The exam is usable as soon as this returns; proctoring startup
        (reference image, handshake, camera) continues alongside it.

        Returns:
            False if the exam could not be loaded (nothing to proctor)
        """
        if not await self.exam.load(exam_id):
            return False

        if self.proctoring is not None:
            self._proctoring_task = asyncio.create_task(self._start_proctoring())

        return True

    async def _start_proctoring(self) -> bool:
        try:
            active = await self.proctoring.start()
        except Exception as e:
            self.logger.error(f"Proctoring unavailable: {e}")
            return False
        if not active:
            self.logger.warning("Exam continues with proctoring degraded")
        return active

    async def wait_proctoring_started(self) -> bool:
        """
        Wait for background proctoring startup.

        Returns:
            True if frames are being sent for verification
        """
        if self._proctoring_task is None:
            return False
        results = await asyncio.gather(self._proctoring_task, return_exceptions=True)
        return results[0] is True

    async def _stop_proctoring(self) -> None:
        task, self._proctoring_task = self._proctoring_task, None
        if task is not None and not task.done():
            task.cancel()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

        try:
            await self.proctoring.stop()
        except Exception as e:
            self.logger.error(f"Error stopping proctoring session: {e}")

    def _on_submitted(self, result: ExamResult) -> None:
        if self.proctoring is not None:
            try:
                self.proctoring.halt_capture()
            except Exception as e:
                self.logger.error(f"Error stopping camera: {e}")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("No running event loop; submission not delivered")
            return
        self._finalize_task = loop.create_task(self._finalize(result))

    async def _finalize(self, result: ExamResult) -> None:
        if self.proctoring is not None:
            await self._stop_proctoring()

        exam = self.exam.exam
        loop = asyncio.get_running_loop()
        try:
            self.submission_delivered = await loop.run_in_executor(
                None, self.exam.provider.submit_exam, exam.id, result
            )
        except Exception as e:
            self.submission_delivered = False
            self.logger.error(f"Error delivering submission for exam {exam.id}: {e}")

    async def wait_finalized(self) -> None:
        """Wait for post-submission work (proctoring teardown, delivery)."""
        if self._finalize_task is not None:
            await asyncio.gather(self._finalize_task, return_exceptions=True)

    async def close(self) -> None:
        """Leave the exam page: stop the timer and proctoring, clear alert history."""
        if self._closed:
            return
        self._closed = True

        self.exam.teardown()
        await self.wait_finalized()

        if self.proctoring is not None:
            await self._stop_proctoring()
            self.proctoring.aggregator.clear_history()

    def status(self) -> Dict[str, Any]:
        """Combined exam and proctoring state for the exam page."""
        return {
            'exam': self.exam.snapshot(),
            'progress': self.exam.progress(),
            'proctoring': self.proctoring.status() if self.proctoring else None,
        }
