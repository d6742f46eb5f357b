"""
Camera access and capture sessions.

OpenCVCamera streams frames from a local webcam on a background thread and
keeps only the latest frame. CaptureSession records the permission state of
one webcam acquisition and owns its device until released.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

import cv2
import numpy as np

from proctoring_engine.interfaces import VideoDevice
from proctoring_engine.models import PermissionState
from shared_utils.exceptions import CameraPermissionError


class OpenCVCamera(VideoDevice):
    """Webcam stream backed by cv2.VideoCapture."""

    def __init__(self, camera_index: int = 0, width: int = 640, height: int = 480):
        self.camera_index = camera_index
        self.width = width
        self.height = height

        self.video_capture: Optional[cv2.VideoCapture] = None
        self.current_frame: Optional[np.ndarray] = None
        self.frame_lock = threading.Lock()
        self.video_thread: Optional[threading.Thread] = None
        self._running = False
        self._release_thread: Optional[threading.Thread] = None

        self.frames_read = 0
        self.logger = logging.getLogger(__name__)

    def get_device_name(self) -> str:
        return f"opencv_camera_{self.camera_index}"

    @property
    def is_open(self) -> bool:
        return self._running

    def open(self) -> None:
        if self._running:
            return
        # the previous stream's driver handle must be gone before reopening the index
        self.wait_released(timeout=2.0)

        capture = cv2.VideoCapture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise CameraPermissionError(f"Failed to access camera {self.camera_index}")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        self.video_capture = capture
        self._running = True
        self.video_thread = threading.Thread(
            target=self._video_loop, args=(capture,), name=f"camera-{self.camera_index}", daemon=True
        )
        self.video_thread.start()
        self.logger.info(f"Camera {self.camera_index} opened")

    def _video_loop(self, capture: cv2.VideoCapture) -> None:
        consecutive_failures = 0
        while self._running:
            ok, frame = capture.read()
            if not ok or frame is None:
                consecutive_failures += 1
                if consecutive_failures == 50:
                    self.logger.warning(f"Camera {self.camera_index} is not delivering frames")
                time.sleep(0.01)
                continue

            consecutive_failures = 0
            with self.frame_lock:
                if not self._running:
                    break
                self.current_frame = frame
            self.frames_read += 1

    def read_latest(self) -> Optional[np.ndarray]:
        with self.frame_lock:
            if self.current_frame is None:
                return None
            return self.current_frame.copy()

    def release(self) -> None:
        """
        Stop the stream without blocking the caller.

        Frames stop immediately; joining the grabber thread and releasing the
        driver handle happen on a short-lived worker thread, since a read()
        stuck in the driver can take seconds to return.
        """
        if not self._running and self.video_capture is None:
            return

        with self.frame_lock:
            self._running = False
            self.current_frame = None
        thread, self.video_thread = self.video_thread, None
        capture, self.video_capture = self.video_capture, None

        self._release_thread = threading.Thread(
            target=self._finish_release,
            args=(thread, capture),
            name=f"camera-{self.camera_index}-release",
            daemon=True,
        )
        self._release_thread.start()

    def _finish_release(self, thread: Optional[threading.Thread], capture: Optional[cv2.VideoCapture]) -> None:
        if thread is not None:
            thread.join(timeout=2.0)
            if thread.is_alive():
                self.logger.warning(f"Camera {self.camera_index} grabber thread did not stop in time")
        if capture is not None:
            capture.release()
        self.logger.info(f"Camera {self.camera_index} released")

    def wait_released(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for a pending release to finish.

        Returns:
            True if no release is still in progress
        """
        thread = self._release_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def get_health_status(self) -> Dict[str, Any]:
        status = super().get_health_status()
        status['frames_read'] = self.frames_read
        status['resolution'] = [self.width, self.height]
        return status


class CaptureSession:
    """
    One active webcam acquisition.

    Holds the device exclusively while granted; release() stops the stream.
    """

    def __init__(self, device: VideoDevice):
        self.device = device
        self.permission_state = PermissionState.UNREQUESTED
        self.last_error: Optional[str] = None
        self.active = False

    def grant(self) -> None:
        self.permission_state = PermissionState.GRANTED
        self.last_error = None
        self.active = True

    def deny(self, error: str) -> None:
        self.permission_state = PermissionState.DENIED
        self.last_error = error
        self.active = False

    def release(self) -> bool:
        """Stop the stream. Returns False if the session was not active."""
        if not self.active:
            return False
        self.device.release()
        self.active = False
        self.permission_state = PermissionState.UNREQUESTED
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'device': self.device.get_device_name(),
            'permission_state': self.permission_state.value,
            'last_error': self.last_error,
            'active': self.active,
        }
