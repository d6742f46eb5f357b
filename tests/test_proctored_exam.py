"""
Tests for the exam page: exam session and proctoring running side by side.
"""

import asyncio
import json

import pytest
from PIL import Image

from exam.models import ExamState
from exam.proctored_exam import ProctoredExam
from exam.provider import ExamProvider, MockExamProvider
from exam.session import ExamSessionController
from proctoring_engine.config import ProctoringConfiguration
from proctoring_engine.models import AlertContext
from proctoring_engine.session import ProctoringSession
from proctoring_engine.transport import TransportChannel
from shared_utils.exceptions import ExamLoadError
from conftest import FakeConnector, FakeDevice, FakeScheduler, drain


URL = "ws://verify.test/ws"
MULTIPLE = json.dumps({'match': False, 'multiple_faces': True, 'face_count': 2})


@pytest.fixture
def reference_path(tmp_path):
    path = tmp_path / "reference.jpg"
    Image.new('RGB', (8, 8)).save(path, format='JPEG')
    return str(path)


def build(scheduler, reference, device=None, connector=None, provider=None):
    provider = provider or MockExamProvider(time_limit_minutes=1)
    connector = connector or FakeConnector()
    exam = ExamSessionController(provider, scheduler=scheduler)
    proctoring = ProctoringSession(
        ProctoringConfiguration(ws_url=URL, reference_image=reference, sound_enabled=False),
        device or FakeDevice(),
        context=AlertContext(exam_id="1"),
        transport=TransportChannel(URL, connect=connector),
        handlers=[],
        scheduler=scheduler,
        random_source=lambda: 0.0,
    )
    return ProctoredExam(exam, proctoring), connector


def play(exam: ExamSessionController, scheduler: FakeScheduler, hook=None):
    """Answer two questions over 8 seconds, calling hook between steps."""
    exam.select_answer(0)
    scheduler.advance(3)
    if hook:
        hook()
    exam.next()
    exam.select_answer(2)
    scheduler.advance(5)


async def baseline_snapshot():
    scheduler = FakeScheduler()
    exam = ExamSessionController(MockExamProvider(time_limit_minutes=1), scheduler=scheduler)
    await exam.load(1)
    play(exam, scheduler)
    return exam.snapshot()


async def test_camera_denied_and_socket_drop_do_not_touch_exam(reference_path):
    expected = await baseline_snapshot()

    scheduler = FakeScheduler()
    proctored, connector = build(scheduler, reference_path, device=FakeDevice(deny=True))
    assert await proctored.start(1) is True
    await proctored.wait_proctoring_started()

    play(proctored.exam, scheduler, hook=connector.last.drop)
    await drain()

    assert not proctored.proctoring.is_connected
    assert proctored.exam.snapshot() == expected
    await proctored.close()


async def test_alerts_do_not_touch_exam(reference_path):
    expected = await baseline_snapshot()

    scheduler = FakeScheduler()
    proctored, connector = build(scheduler, reference_path)
    assert await proctored.start(1) is True
    await proctored.wait_proctoring_started()

    play(proctored.exam, scheduler, hook=lambda: connector.last.feed(MULTIPLE))
    await drain()

    assert len(proctored.proctoring.aggregator.get_alert_history()) == 1
    assert proctored.exam.snapshot() == expected
    assert proctored.exam.is_active
    await proctored.close()


async def test_submit_stops_proctoring_and_delivers_result(reference_path):
    scheduler = FakeScheduler()
    proctored, connector = build(scheduler, reference_path)
    await proctored.start(1)
    assert await proctored.wait_proctoring_started() is True

    proctored.exam.select_answer(0)
    proctored.exam.submit()

    # camera stops synchronously with the submission
    assert not proctored.proctoring.capture.is_active
    await proctored.wait_finalized()

    assert proctored.proctoring.transport.is_closed
    assert proctored.submission_delivered is True
    assert proctored.exam.provider.submissions[0]['answers'][0] == {'questionId': 1, 'selectedChoice': 0}
    assert scheduler.pending == []
    await proctored.close()


async def test_timeout_submission_stops_proctoring(reference_path):
    scheduler = FakeScheduler()
    proctored, connector = build(scheduler, reference_path)
    await proctored.start(1)
    assert await proctored.wait_proctoring_started() is True

    scheduler.advance(60)
    await proctored.wait_finalized()

    assert proctored.exam.state is ExamState.SUBMITTED
    assert proctored.exam.result.reason == "timeout"
    assert proctored.proctoring.transport.is_closed
    assert proctored.proctoring.capture.frame_count > 0
    await proctored.close()


async def test_close_clears_alert_history(reference_path):
    scheduler = FakeScheduler()
    proctored, connector = build(scheduler, reference_path)
    await proctored.start(1)
    assert await proctored.wait_proctoring_started() is True
    connector.last.feed(MULTIPLE)
    await drain()

    await proctored.close()
    await proctored.close()

    assert proctored.proctoring.aggregator.get_alert_history() == []
    assert proctored.proctoring.transport.is_closed
    assert scheduler.pending == []


async def test_exam_load_failure_skips_proctoring(reference_path):
    class BrokenProvider(ExamProvider):
        def get_exam(self, exam_id):
            raise ExamLoadError("Exam not found")

    scheduler = FakeScheduler()
    proctored, connector = build(scheduler, reference_path, provider=BrokenProvider())

    assert await proctored.start(1) is False
    assert proctored.exam.state is ExamState.ERROR
    assert connector.calls == []
    assert proctored.status()['exam']['error'] == "Exam not found"


class HangingConnector:
    """Verification service that accepts the TCP connection but never answers the handshake."""

    def __init__(self):
        self.calls = 0
        self.cancelled = False

    async def __call__(self, url, **kwargs):
        self.calls += 1
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


async def test_exam_is_usable_while_proctoring_handshake_hangs():
    scheduler = FakeScheduler()
    connector = HangingConnector()
    proctored, _ = build(scheduler, None, connector=connector)

    assert await asyncio.wait_for(proctored.start(1), timeout=0.5) is True
    await drain()

    assert connector.calls == 1
    assert proctored.exam.is_active
    assert proctored.exam.time_remaining == 60
    assert proctored.exam.select_answer(1) is True

    await asyncio.wait_for(proctored.close(), timeout=0.5)

    assert connector.cancelled
    assert proctored.proctoring.transport.is_closed
    assert scheduler.pending == []


async def test_submit_during_pending_startup_tears_proctoring_down():
    scheduler = FakeScheduler()
    connector = HangingConnector()
    proctored, _ = build(scheduler, None, connector=connector)
    await proctored.start(1)
    await drain()

    proctored.exam.submit()
    await asyncio.wait_for(proctored.wait_finalized(), timeout=0.5)

    assert connector.cancelled
    assert proctored.submission_delivered is True
    assert not proctored.proctoring.capture.is_active
    await proctored.close()
