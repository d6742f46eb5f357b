"""
Tests for camera access and capture sessions.
"""

import threading
import time

import numpy as np
import pytest

import capture.camera as camera_module
from capture.camera import CaptureSession, OpenCVCamera
from proctoring_engine.models import PermissionState
from shared_utils.exceptions import CameraPermissionError
from conftest import FakeDevice


class FakeVideoCapture:
    def __init__(self, index, opened=True):
        self.index = index
        self.opened = opened
        self.released = False
        self.properties = {}

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.properties[prop] = value

    def read(self):
        time.sleep(0.001)
        return True, np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self):
        self.released = True


def test_unavailable_camera_raises_permission_error(monkeypatch):
    monkeypatch.setattr(camera_module.cv2, "VideoCapture", lambda index: FakeVideoCapture(index, opened=False))

    with pytest.raises(CameraPermissionError):
        OpenCVCamera(3).open()


def test_camera_streams_latest_frame(monkeypatch):
    monkeypatch.setattr(camera_module.cv2, "VideoCapture", FakeVideoCapture)
    camera = OpenCVCamera(0, width=64, height=48)

    camera.open()
    try:
        deadline = time.time() + 2.0
        frame = None
        while frame is None and time.time() < deadline:
            frame = camera.read_latest()
            time.sleep(0.005)

        assert camera.is_open
        assert frame.shape == (48, 64, 3)
        assert camera.get_health_status()['device_name'] == "opencv_camera_0"
    finally:
        capture = camera.video_capture
        camera.release()

    assert camera.wait_released(timeout=2.0)
    assert capture.released
    assert not camera.is_open
    assert camera.read_latest() is None
    camera.release()


def test_capture_session_lifecycle():
    device = FakeDevice()
    session = CaptureSession(device)
    assert session.permission_state is PermissionState.UNREQUESTED
    assert session.release() is False

    device.open()
    session.grant()
    assert session.to_dict()['permission_state'] == 'granted'

    assert session.release() is True
    assert session.release() is False
    assert device.release_calls == 1

    session.deny("NotAllowedError")
    assert session.permission_state is PermissionState.DENIED
    assert session.last_error == "NotAllowedError"


def test_release_does_not_wait_for_a_stuck_read(monkeypatch):
    unblock = threading.Event()

    class StuckVideoCapture(FakeVideoCapture):
        def read(self):
            unblock.wait(timeout=5.0)
            return False, None

    monkeypatch.setattr(camera_module.cv2, "VideoCapture", StuckVideoCapture)
    camera = OpenCVCamera(0)
    camera.open()
    capture = camera.video_capture

    started = time.monotonic()
    camera.release()
    elapsed = time.monotonic() - started

    assert elapsed < 0.5
    assert not camera.is_open
    assert camera.read_latest() is None
    assert not capture.released

    unblock.set()
    assert camera.wait_released(timeout=2.0)
    assert capture.released
