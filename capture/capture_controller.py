"""
Capture Loop Controller - Camera acquisition, live preview and frame emission.

Frames are emitted on a self-renewing, randomized cadence: after every
capture a single one-shot timer is re-armed with a fresh delay drawn
uniformly from [min_delay, min_delay + jitter). Capture timing therefore
cannot be anticipated, and at most one capture is ever pending.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Dict, Optional

import cv2
import numpy as np

from proctoring_engine.interfaces import VideoDevice
from proctoring_engine.models import FrameEmission, PermissionState, ReferenceImage
from proctoring_engine.transport import TransportChannel
from .camera import CaptureSession
from .preview import encode_frame_data_url, render_circular_preview


class CaptureLoopController:
    """Drives one CaptureSession: preview rendering and randomized frame emission."""

    def __init__(
        self,
        device: VideoDevice,
        transport: TransportChannel,
        reference_image: Optional[ReferenceImage] = None,
        scheduler=None,
        random_source: Callable[[], float] = random.random,
        min_delay_ms: float = 5000,
        jitter_ms: float = 5000,
        preview_size: int = 200,
        preview_fps: int = 30,
        on_camera_ready: Optional[Callable[[VideoDevice], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        on_camera_stopped: Optional[Callable[[], None]] = None,
        on_preview: Optional[Callable[[np.ndarray], None]] = None
    ):
        """
        Initialize the controller.

        Args:
            device: Camera stream to acquire
            transport: Channel the frames are handed to
            reference_image: Enrollment photo sent alongside every frame
            scheduler: Object providing call_later(); defaults to the running loop
            random_source: Returns floats in [0, 1) for the capture cadence
            min_delay_ms: Lower bound of the inter-capture delay
            jitter_ms: Width of the inter-capture delay window
            preview_size: Side of the circular preview in pixels
            preview_fps: Preview redraw rate
        """
        self.device = device
        self.transport = transport
        self.reference_image = reference_image
        self._scheduler = scheduler
        self.random_source = random_source
        self.min_delay_ms = min_delay_ms
        self.jitter_ms = jitter_ms
        self.preview_size = preview_size
        self.preview_fps = preview_fps

        self.on_camera_ready = on_camera_ready
        self.on_error = on_error
        self.on_camera_stopped = on_camera_stopped
        self.on_preview = on_preview

        self.session = CaptureSession(device)
        self.preview: Optional[np.ndarray] = None
        self.frame_count = 0
        self.last_delay_ms: Optional[float] = None

        self._capture_handle = None
        self._render_handle = None
        # Bumped by stop_capture() so a pending start can detect it was cancelled
        self._generation = 0

        self.logger = logging.getLogger(__name__)

    @property
    def scheduler(self):
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        return self._scheduler

    @property
    def permission_state(self) -> PermissionState:
        return self.session.permission_state

    @property
    def camera_error(self) -> Optional[str]:
        return self.session.last_error

    @property
    def is_active(self) -> bool:
        return self.session.active

    @property
    def has_pending_capture(self) -> bool:
        return self._capture_handle is not None

    def set_reference_image(self, reference_image: Optional[ReferenceImage]) -> None:
        self.reference_image = reference_image

    async def start_capture(self) -> bool:
        """
        Request camera access and start the preview and capture loops.

        Returns:
            True if the camera is streaming, False if access failed; failure
            is reported through on_error and the session state, never raised
        """
        if self.session.active:
            return True

        generation = self._generation
        loop = asyncio.get_running_loop()
        opening = loop.run_in_executor(None, self.device.open)
        try:
            await asyncio.shield(opening)
        except asyncio.CancelledError:
            # the open keeps running on its worker thread; release what it acquires
            opening.add_done_callback(self._release_abandoned_open)
            raise
        except Exception as e:
            message = str(e) or "Failed to access camera"
            self.session.deny(message)
            self.logger.error(f"Camera access error: {message}")
            self._fire(self.on_error, message)
            return False

        if generation != self._generation:
            # stop_capture() ran while the permission request was pending
            self.device.release()
            return False

        self.session.grant()
        self.logger.info(f"Camera ready for exam monitoring: {self.device.get_device_name()}")
        self._render_tick()
        self.schedule_next_capture()
        self._fire(self.on_camera_ready, self.device)
        return True

    def _release_abandoned_open(self, future: asyncio.Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        self.logger.info("Releasing camera opened after its start was cancelled")
        self.device.release()

    def schedule_next_capture(self) -> float:
        """
        Arm the single pending capture with a freshly sampled delay.

        Returns:
            The chosen delay in milliseconds
        """
        if self._capture_handle is not None:
            self._capture_handle.cancel()

        delay_ms = self.min_delay_ms + self.random_source() * self.jitter_ms
        self.last_delay_ms = delay_ms
        self._capture_handle = self.scheduler.call_later(delay_ms / 1000.0, self._on_capture_timer)
        return delay_ms

    def _on_capture_timer(self) -> None:
        self._capture_handle = None
        if not self.session.active:
            return

        try:
            self.capture_frame()
        except Exception as e:
            self.logger.error(f"Frame capture failed: {e}")

        if self.session.active and self._capture_handle is None:
            self.schedule_next_capture()

    def capture_frame(self) -> bool:
        """
        Snapshot the current frame and hand it to the transport.

        No-op unless the camera is granted, the reference image is loaded and
        the transport is open.

        Returns:
            True if a frame was handed to the transport
        """
        if not self.session.active or self.session.permission_state is not PermissionState.GRANTED:
            return False
        if self.reference_image is None:
            self.logger.debug("Skipping capture: reference image not loaded")
            return False
        if not self.transport.is_connected:
            self.logger.debug("Skipping capture: transport not connected")
            return False

        frame = self.device.read_latest()
        if frame is None:
            self.logger.debug("Skipping capture: no frame available yet")
            return False

        try:
            frame_image = encode_frame_data_url(frame)
        except (ValueError, cv2.error) as e:
            self.logger.warning(f"Could not encode frame: {e}")
            return False

        emission = FrameEmission(
            reference_image=self.reference_image.data_url,
            frame_image=frame_image,
            sequence=self.frame_count + 1,
        )
        if not self.transport.send(emission):
            return False

        self.frame_count += 1
        self.logger.debug(f"Frame #{self.frame_count} sent for verification")
        return True

    def _render_tick(self) -> None:
        self._render_handle = None
        if not self.session.active:
            return

        # no consumer, nothing to draw
        frame = self.device.read_latest() if self.on_preview is not None else None
        if frame is not None:
            try:
                self.preview = render_circular_preview(frame, self.preview_size)
            except (ValueError, cv2.error) as e:
                self.logger.debug(f"Preview render skipped: {e}")
            else:
                self._fire(self.on_preview, self.preview)

        self._render_handle = self.scheduler.call_later(1.0 / self.preview_fps, self._render_tick)

    def stop_capture(self) -> bool:
        """
        Cancel pending timers, stop the stream and clear the preview.

        Idempotent. No callback scheduled by this controller fires after it returns.

        Returns:
            True if anything was stopped
        """
        self._generation += 1

        cancelled = False
        for handle in (self._capture_handle, self._render_handle):
            if handle is not None:
                handle.cancel()
                cancelled = True
        self._capture_handle = None
        self._render_handle = None

        released = self.session.release()
        if not (released or cancelled):
            return False

        self.preview = None
        self.logger.info(f"Camera stopped after {self.frame_count} frames")
        self._fire(self.on_camera_stopped)
        return True

    def _fire(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(f"Error in capture callback {getattr(callback, '__name__', callback)}: {e}")

    def get_health_status(self) -> Dict[str, Any]:
        """Return health status information for monitoring."""
        return {
            'session': self.session.to_dict(),
            'frame_count': self.frame_count,
            'last_delay_ms': self.last_delay_ms,
            'capture_pending': self._capture_handle is not None,
            'reference_image_loaded': self.reference_image is not None,
            'preview_size': self.preview_size,
        }
