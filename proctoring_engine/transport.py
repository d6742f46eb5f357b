"""
Transport Channel - Persistent WebSocket connection to the verification service.

Outbound frames are queued and written by a writer task (fire-and-forget,
nothing is acknowledged). Inbound messages are parsed at the boundary and
published on an async stream with a single consumer. A dropped connection
is not re-established automatically; callers may call open() again.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from shared_utils.common import safe_json_loads
from shared_utils.exceptions import InvalidPayloadError, TransportError
from .models import FrameEmission, VerificationResponse


_END_OF_STREAM = object()
_MALFORMED = object()


class TransportChannel:
    """Owns the single socket of a proctoring session."""

    def __init__(
        self,
        url: Optional[str] = None,
        connect: Optional[Callable[..., Any]] = None,
        open_timeout: float = 10.0,
        buffer_latest_frame: bool = False
    ):
        """
        Initialize the channel.

        Args:
            url: ws:// or wss:// URL of the verification endpoint
            connect: Connection factory, defaults to websockets.connect
            open_timeout: Seconds allowed for the opening handshake
            buffer_latest_frame: Keep the most recent frame dropped while
                disconnected and send it after the next successful open()
        """
        self.url = url
        self._connect = connect or websockets.connect
        self.open_timeout = open_timeout
        self.buffer_latest_frame = buffer_latest_frame

        self._ws = None
        self._connected = False
        self._closed = False
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._outbound: asyncio.Queue = asyncio.Queue()
        self._reader_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._pending_frame: Optional[FrameEmission] = None

        self.connection_callbacks: List[Callable[[bool], None]] = []

        self.frames_sent = 0
        self.frames_dropped = 0
        self.messages_received = 0
        self.parse_errors = 0
        self.last_error: Optional[str] = None

        self.logger = logging.getLogger(__name__)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def open(self, url: Optional[str] = None) -> bool:
        """
        Establish the connection.

        Returns:
            True once connected, False if the connection failed or the
            channel was already closed
        """
        if self._closed:
            self.logger.warning("Cannot open a closed transport channel")
            return False
        if self._connected:
            return True

        target = url or self.url
        if not target:
            raise TransportError("No WebSocket URL configured")
        self.url = target

        try:
            ws = await self._connect(target, open_timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.last_error = str(e) or type(e).__name__
            self.logger.error(f"WebSocket connection to {target} failed: {self.last_error}")
            return False

        if self._closed:
            # close() ran while the handshake was in flight
            await self._close_socket(ws)
            return False

        self._ws = ws
        self._connected = True
        self.last_error = None
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        self._writer_task = asyncio.create_task(self._write_loop(ws))
        self.logger.info(f"WebSocket connection open: {target}")
        self._notify_connection(True)

        if self._pending_frame is not None:
            frame, self._pending_frame = self._pending_frame, None
            self.logger.info(f"Flushing buffered frame #{frame.sequence}")
            self.send(frame)

        return True

    def send(self, frame: FrameEmission) -> bool:
        """
        Queue a frame for transmission.

        Returns:
            True if the frame was accepted, False if it was dropped
        """
        if self._closed:
            return False

        if not self._connected:
            self.frames_dropped += 1
            if self.buffer_latest_frame:
                self._pending_frame = frame
            self.logger.debug(f"Dropping frame #{frame.sequence}: transport not connected")
            return False

        self._outbound.put_nowait(json.dumps(frame.to_wire()))
        return True

    def on_message(self, raw: Any) -> Optional[VerificationResponse]:
        """
        Parse one inbound message and publish it on the response stream.

        Malformed messages are logged and discarded.
        """
        self.messages_received += 1

        data = safe_json_loads(raw, _MALFORMED)
        if data is _MALFORMED:
            self.parse_errors += 1
            self.logger.warning(f"Discarding non-JSON message from verification service: {str(raw)[:100]!r}")
            return None

        try:
            response = VerificationResponse.from_dict(data)
        except InvalidPayloadError as e:
            self.parse_errors += 1
            self.logger.warning(f"Discarding malformed verification response: {e}")
            return None

        self._inbound.put_nowait(response)
        return response

    async def responses(self) -> AsyncIterator[VerificationResponse]:
        """Yield parsed responses in arrival order until the channel is closed."""
        while True:
            item = await self._inbound.get()
            if item is _END_OF_STREAM:
                return
            yield item

    async def close(self) -> None:
        """Close the channel. Only the first call has an effect."""
        if self._closed:
            return
        self._closed = True

        was_connected = self._connected
        self._connected = False
        self._pending_frame = None
        ws, self._ws = self._ws, None

        tasks = [task for task in (self._reader_task, self._writer_task) if task and not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if ws is not None:
            await self._close_socket(ws)

        self._inbound.put_nowait(_END_OF_STREAM)
        if was_connected:
            self._notify_connection(False)
        self.logger.info("WebSocket connection closed")

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                self.on_message(raw)
            self.logger.warning("WebSocket closed by server")
        except ConnectionClosed as e:
            self.last_error = str(e)
            self.logger.warning(f"WebSocket closed unexpectedly: {e}")
        except (WebSocketException, OSError) as e:
            self.last_error = str(e)
            self.logger.error(f"WebSocket error: {e}")
        finally:
            if ws is self._ws:
                self._handle_connection_lost()

    async def _write_loop(self, ws) -> None:
        while True:
            payload = await self._outbound.get()
            try:
                await ws.send(payload)
                self.frames_sent += 1
            except ConnectionClosed as e:
                self.frames_dropped += 1
                self.last_error = str(e)
                self.logger.warning(f"Send failed, connection closed: {e}")
                if ws is self._ws:
                    self._handle_connection_lost()
                return
            except (WebSocketException, OSError) as e:
                self.frames_dropped += 1
                self.last_error = str(e) or type(e).__name__
                self.logger.error(f"Send failed: {self.last_error}")
                if ws is self._ws:
                    self._handle_connection_lost()
                return

    def _handle_connection_lost(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._ws = None

        current = asyncio.current_task()
        for task in (self._reader_task, self._writer_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

        # queued frames will never be written
        while not self._outbound.empty():
            self._outbound.get_nowait()
            self.frames_dropped += 1

        self.logger.warning("Verification channel disconnected; proctoring paused until reopened")
        self._notify_connection(False)

    async def _close_socket(self, ws) -> None:
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            self.logger.debug(f"Error while closing WebSocket: {e}")

    def _notify_connection(self, connected: bool) -> None:
        for callback in self.connection_callbacks:
            try:
                callback(connected)
            except Exception as e:
                self.logger.error(f"Error in connection callback: {e}")

    def get_health_status(self) -> Dict[str, Any]:
        """Return health status information for monitoring."""
        return {
            'url': self.url,
            'is_connected': self._connected,
            'is_closed': self._closed,
            'frames_sent': self.frames_sent,
            'frames_dropped': self.frames_dropped,
            'messages_received': self.messages_received,
            'parse_errors': self.parse_errors,
            'has_buffered_frame': self._pending_frame is not None,
            'last_error': self.last_error,
        }
