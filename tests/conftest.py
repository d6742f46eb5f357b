"""
Shared fixtures and fakes for the test suite.
"""

import asyncio
from concurrent.futures import Executor, Future
from typing import Any, Dict, List, Optional

import numpy as np
import pytest
import requests
from websockets.exceptions import ConnectionClosed

from proctoring_engine.config import ProctoringConfiguration
from proctoring_engine.interfaces import VideoDevice
from shared_utils.exceptions import CameraPermissionError


class FakeHandle:
    def __init__(self, when: float, seq: int, callback, args):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock with the call_later()/time() surface of an asyncio loop."""

    def __init__(self):
        self.now = 0.0
        self._handles: List[FakeHandle] = []
        self._seq = 0

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback, *args) -> FakeHandle:
        self._seq += 1
        handle = FakeHandle(self.now + delay, self._seq, callback, args)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self._handles if not h.cancelled]

    def pending_for(self, callback) -> List[FakeHandle]:
        return [h for h in self.pending if h.callback == callback]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due callbacks in time order."""
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
        self.now = target


class FakeDevice(VideoDevice):
    """Camera that serves a constant frame, or refuses access."""

    def __init__(self, frame: Optional[np.ndarray] = None, deny: bool = False):
        self.frame = frame if frame is not None else np.full((480, 640, 3), 128, dtype=np.uint8)
        self.deny = deny
        self.open_calls = 0
        self.release_calls = 0
        self._open = False

    def get_device_name(self) -> str:
        return "fake_camera"

    def open(self) -> None:
        self.open_calls += 1
        if self.deny:
            raise CameraPermissionError("Permission denied")
        self._open = True

    def read_latest(self) -> Optional[np.ndarray]:
        if not self._open:
            return None
        return self.frame.copy()

    def release(self) -> None:
        self.release_calls += 1
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open


_CLOSE = object()
_DROP = object()


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: List[str] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, payload: str) -> None:
        if self.closed:
            raise ConnectionClosed(None, None)
        self.sent.append(payload)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(_CLOSE)

    def feed(self, message: Any) -> None:
        self._incoming.put_nowait(message)

    def drop(self) -> None:
        """Simulate the server going away."""
        self.closed = True
        self._incoming.put_nowait(_DROP)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if item is _DROP:
            raise ConnectionClosed(None, None)
        return item


class FakeConnector:
    """Replacement for websockets.connect."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Any] = []
        self.sockets: List[FakeWebSocket] = []

    async def __call__(self, url: str, **kwargs) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        if self.fail:
            raise OSError("Connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


class ImmediateExecutor(Executor):
    """Runs submitted work synchronously."""

    def submit(self, fn, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, content: bytes = b""):
        self.status_code = status_code
        self.reason = "OK" if status_code < 400 else "Error"
        self._payload = payload
        self.content = content

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} {self.reason}")


class FakeHttpSession:
    """Records requests and replays canned responses keyed by (method, url)."""

    def __init__(self, responses: Optional[Dict[Any, Any]] = None):
        self.responses = responses or {}
        self.requests: List[Dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.requests.append({'method': method, 'url': url, **kwargs})
        response = self.responses.get((method, url), FakeResponse(404))
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self.request('GET', url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self.request('POST', url, **kwargs)


async def drain(rounds: int = 10) -> None:
    """Let background tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def config():
    return ProctoringConfiguration(sound_enabled=False)
