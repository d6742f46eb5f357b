"""
Proctoring Session - Explicit owner of one proctoring run.

A ProctoringSession is created per exam attempt and owns the reference
image, the transport channel, the capture loop and the alert aggregator.
It wires them together (capture -> transport -> interpreter -> aggregator)
and is the boundary at which every proctoring failure stops: start() and
stop() never raise into the exam session.
"""

import asyncio
import functools
import logging
import math
import random
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import requests

from capture.capture_controller import CaptureLoopController
from capture.preview import draw_indicator_ring
from shared_utils.exceptions import TransportError
from shared_utils.file_utils import load_image_data_url
from .alerts import AlertAggregator, PreviewIndicator
from .config import ProctoringConfiguration
from .interfaces import AlertHandler, VideoDevice
from .interpreter import VerificationInterpreter
from .models import AlertContext, ReferenceImage
from .notifications import ToneNotifier
from .reporting import ActivityReporter
from .transport import TransportChannel


def build_default_handlers(
    config: ProctoringConfiguration,
    context: Optional[AlertContext] = None,
    http_session: Optional[requests.Session] = None
) -> List[AlertHandler]:
    """
    Create the standard alert side effects: audible cue and backend report.

    Args:
        config: Client configuration
        context: Identity fields for the reporting payload
        http_session: Optional requests session for the reporting sink

    Returns:
        List of alert handlers
    """
    context = context or AlertContext()
    return [
        ToneNotifier(enabled=config.sound_enabled),
        ActivityReporter(
            config.api_base_url,
            exam_id=context.exam_id,
            student_id=context.student_id,
            session=http_session,
            timeout=config.request_timeout_seconds,
        ),
    ]


class ProctoringSession:
    """
    Context object for one proctoring run.

    Lifecycle: construct -> start() -> stop(). A stopped session cannot be
    restarted; create a new one for a new exam attempt.
    """

    def __init__(
        self,
        config: ProctoringConfiguration,
        device: VideoDevice,
        context: Optional[AlertContext] = None,
        transport: Optional[TransportChannel] = None,
        interpreter: Optional[VerificationInterpreter] = None,
        aggregator: Optional[AlertAggregator] = None,
        handlers: Optional[List[AlertHandler]] = None,
        scheduler=None,
        random_source: Callable[[], float] = random.random,
        http_session: Optional[requests.Session] = None
    ):
        """
        Initialize the proctoring session.

        Args:
            config: Client configuration
            device: Camera stream, owned by the capture loop while granted
            context: Student and exam identity stamped onto alerts
            transport: Verification channel; built from config.ws_url if omitted
            interpreter: Response classifier
            aggregator: Alert history and notification fan-out
            handlers: Alert side effects for a default aggregator
            scheduler: Object providing call_later() and time(); defaults to the running loop
            random_source: Random source for the capture cadence
            http_session: requests session for remote reference images
        """
        self.config = config
        self.context = context or AlertContext()
        self.http_session = http_session

        self.transport = transport or TransportChannel(
            config.ws_url,
            buffer_latest_frame=config.buffer_latest_frame,
        )
        self.interpreter = interpreter or VerificationInterpreter(self.context)
        self.aggregator = aggregator or AlertAggregator(
            scheduler=scheduler,
            dwell_seconds=config.alert_dwell_seconds,
            handlers=handlers,
            notification_cooldown_seconds=config.notification_cooldown_seconds,
        )
        self.capture = CaptureLoopController(
            device,
            self.transport,
            scheduler=scheduler,
            random_source=random_source,
            min_delay_ms=config.capture_min_delay_ms,
            jitter_ms=config.capture_jitter_ms,
            preview_size=config.preview_size,
            preview_fps=config.preview_fps,
        )

        self.preview_sinks: List[Callable[[np.ndarray], None]] = []
        self.pulse_period_seconds = 1.0
        self.reference_image: Optional[ReferenceImage] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._started = False
        self._stopped = False

        self.logger = logging.getLogger(__name__)

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    @property
    def is_connected(self) -> bool:
        return self.transport.is_connected

    async def load_reference_image(self) -> Optional[ReferenceImage]:
        """
        Load the enrollment photo once.

        Returns:
            The loaded image, or None if it could not be read; captures stay
            no-ops until a reference image is available
        """
        if self.reference_image is not None:
            return self.reference_image

        source = self.config.reference_image
        if not source:
            self.logger.warning("No reference image configured; proctoring will not send frames")
            return None

        loop = asyncio.get_running_loop()
        loader = functools.partial(
            load_image_data_url,
            source,
            session=self.http_session,
            timeout=self.config.request_timeout_seconds,
        )
        try:
            data_url, mime_type = await loop.run_in_executor(None, loader)
        except (OSError, ValueError, requests.RequestException) as e:
            self.logger.error(f"Failed to load reference image from {source}: {e}")
            return None

        self.reference_image = ReferenceImage(data_url=data_url, mime_type=mime_type, source=str(source))
        self.capture.set_reference_image(self.reference_image)
        self.logger.info(f"Reference image loaded from {source} ({mime_type})")
        return self.reference_image

    async def start(self) -> bool:
        """
        Load the reference image, open the channel and start the camera.

        Each step degrades independently: a missing reference image or a
        failed connection still leaves the camera preview running.

        Returns:
            True if frames will be sent for verification
        """
        if self._started:
            self.logger.warning("Proctoring session already started")
            return False
        self._started = True

        await self.load_reference_image()
        if self._stopped:
            return False

        try:
            connected = await self.transport.open()
        except TransportError as e:
            self.logger.error(f"Verification channel unavailable: {e}")
            connected = False
        if self._stopped:
            return False

        self._consumer_task = asyncio.create_task(self._consume_responses())

        camera_ready = await self.capture.start_capture()
        if not camera_ready:
            self.logger.warning("Proctoring unavailable: camera could not be started")

        return camera_ready and connected and self.reference_image is not None

    async def _consume_responses(self) -> None:
        async for response in self.transport.responses():
            try:
                alert = self.interpreter.process_response(response)
                if alert is not None:
                    self.aggregator.record(alert)
            except Exception as e:
                self.logger.error(f"Error processing verification response: {e}")

    def halt_capture(self) -> bool:
        """Stop the camera and cancel pending captures immediately."""
        return self.capture.stop_capture()

    async def stop(self) -> bool:
        """
        Tear the session down. Idempotent.

        Returns:
            True on the first call, False afterwards
        """
        if self._stopped:
            return False
        self._stopped = True

        self.capture.stop_capture()
        await self.transport.close()

        if self._consumer_task is not None:
            await asyncio.gather(self._consumer_task, return_exceptions=True)
            self._consumer_task = None

        self.aggregator.dismiss_current()
        for handler in self.aggregator.handlers:
            if isinstance(handler, ActivityReporter):
                handler.shutdown(wait=False)

        self.logger.info(
            f"Proctoring session stopped: {self.capture.frame_count} frames, "
            f"{len(self.aggregator.history_tracker)} alerts"
        )
        return True

    def add_preview_sink(self, sink: Callable[[np.ndarray], None]) -> None:
        """
        Receive the live circular preview, framed by the status ring.

        The preview is only rendered while at least one sink is attached.
        """
        self.preview_sinks.append(sink)
        self.capture.on_preview = self._publish_preview

    def _publish_preview(self, preview: np.ndarray) -> None:
        phase = 0.5 + 0.5 * math.sin(2 * math.pi * self.capture.scheduler.time() / self.pulse_period_seconds)
        framed = draw_indicator_ring(preview, self.indicator(), pulse_phase=phase)
        for sink in self.preview_sinks:
            try:
                sink(framed)
            except Exception as e:
                self.logger.error(f"Error in preview sink: {e}")

    def indicator(self) -> PreviewIndicator:
        """Current preview border state."""
        return self.aggregator.indicator(self.transport.is_connected)

    def status(self) -> Dict[str, Any]:
        """Snapshot of the proctoring state for status displays."""
        indicator = self.indicator()
        current = self.aggregator.current_alert
        return {
            'running': self.is_running,
            'permission_state': self.capture.permission_state.value,
            'camera_error': self.capture.camera_error,
            'connected': self.transport.is_connected,
            'reference_image_loaded': self.reference_image is not None,
            'indicator': {'color': indicator.color, 'pulsing': indicator.pulsing},
            'current_alert': current.to_dict() if current else None,
            'frames_sent': self.capture.frame_count,
            'alert_count': len(self.aggregator.history_tracker),
        }

    def get_health_status(self) -> Dict[str, Any]:
        """Return health status information for monitoring."""
        return {
            'capture': self.capture.get_health_status(),
            'transport': self.transport.get_health_status(),
            'interpreter': self.interpreter.get_statistics(),
            'alerts': self.aggregator.get_alert_statistics(),
        }
