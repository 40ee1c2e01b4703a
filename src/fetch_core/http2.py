"""
HTTP/2 session implementation for fetch_core.

An HTTP2Session is one multiplexed h2 connection to an origin. A single
reader task feeds received frames into h2 and routes the resulting events
to per-stream state; request coroutines only ever wait on that state.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import h2.config
import h2.connection
import h2.errors
import h2.events
import h2.exceptions

from .exceptions import FetchError, ServerAborted, Timeout, TransportError
from .http_primitives import Header, Origin, RequestDescriptor
from .network.stream import NetworkStream

logger = logging.getLogger(__name__)

# Connection-specific headers are forbidden in HTTP/2 (RFC 9113 8.2.2).
CONNECTION_HEADERS = frozenset(
    ["connection", "host", "keep-alive", "proxy-connection", "transfer-encoding", "upgrade"]
)


class _StreamState:
    """Everything the reader task knows about one open stream."""

    def __init__(self) -> None:
        self.response: "asyncio.Future[Tuple[int, List[Header]]]" = (
            asyncio.get_running_loop().create_future()
        )
        self.data: "asyncio.Queue[Any]" = asyncio.Queue()
        self.ended = False

    def fail(self, error: FetchError) -> None:
        if not self.response.done():
            self.response.set_exception(error)
            # Nobody may ever await it if the caller already gave up.
            self.response.exception()
        self.data.put_nowait(error)


class HTTP2Session:
    """
    One persistent HTTP/2 connection to an origin.

    The session keeps a reference count of in-flight requests (``ref`` /
    ``unref``). A session with no references is idle: it stays pooled, but
    nothing is waiting on it.
    """

    READ_SIZE = 65536

    def __init__(self, stream: NetworkStream, origin: Origin):
        self._stream = stream
        self._origin = origin
        config = h2.config.H2Configuration(client_side=True, header_encoding="utf-8")
        self._h2_connection = h2.connection.H2Connection(config=config)
        self._streams: Dict[int, _StreamState] = {}
        self._write_lock = asyncio.Lock()
        self._window_updated = asyncio.Event()
        self._reader_task: Optional["asyncio.Task[None]"] = None
        self._refs = 0
        self._closed = False
        self._closing = False
        self._terminated = False

    async def start(self) -> None:
        """Send the connection preface and start the reader task."""
        self._h2_connection.initiate_connection()
        await self._flush()
        self._reader_task = asyncio.get_running_loop().create_task(self._read_loop())
        logger.debug(f"HTTP/2 session opened to {self._origin}")

    # -- request side ------------------------------------------------------

    async def send_request(self, request: RequestDescriptor) -> int:
        """
        Open a new stream and send the request on it.

        Returns:
            The stream id to receive the response on.

        Raises:
            TransportError: If the session cannot carry a new stream.
        """
        if not self.is_available:
            raise TransportError(f"HTTP/2 session to {self._origin} is not available")

        headers = [
            (":method", request.method),
            (":scheme", request.url.scheme),
            (":authority", request.url.authority),
            (":path", request.url.target),
        ]
        headers.extend(
            (name, value) for name, value in request.headers if name not in CONNECTION_HEADERS
        )
        body = request.body or b""

        try:
            async with self._write_lock:
                stream_id = self._h2_connection.get_next_available_stream_id()
                self._streams[stream_id] = _StreamState()
                self._h2_connection.send_headers(stream_id, headers, end_stream=not body)
                await self._flush()

            if body:
                await self._send_body(stream_id, body)
        except (OSError, h2.exceptions.ProtocolError) as e:
            raise TransportError(f"{request.method} {request.url} failed: {e}", e)

        return stream_id

    async def _send_body(self, stream_id: int, body: bytes) -> None:
        view = memoryview(body)
        while view:
            async with self._write_lock:
                window = min(
                    self._h2_connection.local_flow_control_window(stream_id),
                    self._h2_connection.max_outbound_frame_size,
                )
                if window > 0:
                    chunk, view = view[:window], view[window:]
                    self._h2_connection.send_data(stream_id, chunk.tobytes(), end_stream=not view)
                    await self._flush()
                    continue
                self._window_updated.clear()

            await self._wait_for_window(stream_id)

    async def _wait_for_window(self, stream_id: int) -> None:
        state = self._streams.get(stream_id)
        if state is None or self._closed:
            raise TransportError("Stream closed while sending request body")
        await self._window_updated.wait()

    async def receive_response(self, stream_id: int) -> Tuple[int, List[Header]]:
        """Wait for the response headers of a stream."""
        status_code, headers = await asyncio.shield(self._streams[stream_id].response)
        return status_code, headers

    async def receive_data(self, stream_id: int, timeout: Optional[float] = None) -> Optional[bytes]:
        """
        Receive the next body chunk of a stream, or None at its end.

        Raises:
            Timeout: If no data arrives within ``timeout``
            ServerAborted: If the stream was reset or the session died
        """
        state = self._streams.get(stream_id)
        if state is None:
            return None

        try:
            item = await asyncio.wait_for(state.data.get(), timeout=timeout)
        except asyncio.TimeoutError:
            raise Timeout("No response body data received", timeout)

        if isinstance(item, FetchError):
            raise item
        if item is None:
            return None

        data, flow_controlled_length = item
        await self._acknowledge(stream_id, flow_controlled_length)
        return data

    async def _acknowledge(self, stream_id: int, length: int) -> None:
        if self._closed:
            return
        async with self._write_lock:
            self._h2_connection.acknowledge_received_data(length, stream_id)
            await self._flush()

    async def close_stream(self, stream_id: int, reset: bool = False) -> None:
        """Forget a stream, resetting it first if it is still open."""
        state = self._streams.pop(stream_id, None)
        if state is None or not reset or state.ended or self._closed:
            return
        async with self._write_lock:
            try:
                self._h2_connection.reset_stream(stream_id, error_code=h2.errors.ErrorCodes.CANCEL)
                await self._flush()
            except (OSError, h2.exceptions.ProtocolError) as e:
                logger.warning(f"Error resetting HTTP/2 stream {stream_id}: {e}")

    async def _flush(self) -> None:
        data = self._h2_connection.data_to_send()
        if data:
            await self._stream.write(data)

    # -- reader side -------------------------------------------------------

    async def _read_loop(self) -> None:
        error: FetchError = ServerAborted("HTTP/2 connection closed by server")
        try:
            while True:
                data = await self._stream.read(self.READ_SIZE)
                if not data:
                    break
                events = self._h2_connection.receive_data(data)
                for event in events:
                    self._process_event(event)
                async with self._write_lock:
                    await self._flush()
        except asyncio.CancelledError:
            error = TransportError("HTTP/2 session closed")
            raise
        except (OSError, h2.exceptions.ProtocolError) as e:
            logger.debug(f"HTTP/2 session to {self._origin} failed: {e}")
            error = ServerAborted(str(e), e)
        finally:
            self._closed = True
            self._window_updated.set()
            for state in self._streams.values():
                if not state.ended:
                    state.fail(error)

    def _process_event(self, event: h2.events.Event) -> None:
        if isinstance(event, h2.events.ResponseReceived):
            state = self._streams.get(event.stream_id)
            if state is not None and not state.response.done():
                headers = [(name, value) for name, value in event.headers]
                status = int(dict(headers)[":status"])
                state.response.set_result(
                    (status, [h for h in headers if not h[0].startswith(":")])
                )

        elif isinstance(event, h2.events.DataReceived):
            state = self._streams.get(event.stream_id)
            if state is not None:
                state.data.put_nowait((event.data, event.flow_controlled_length))
            else:
                self._h2_connection.acknowledge_received_data(
                    event.flow_controlled_length, event.stream_id
                )

        elif isinstance(event, h2.events.StreamEnded):
            state = self._streams.get(event.stream_id)
            if state is not None:
                state.ended = True
                state.data.put_nowait(None)

        elif isinstance(event, h2.events.StreamReset):
            state = self._streams.get(event.stream_id)
            if state is not None:
                state.ended = True
                state.fail(ServerAborted(f"Stream reset by server (error code {event.error_code})"))
            self._window_updated.set()

        elif isinstance(event, h2.events.WindowUpdated):
            self._window_updated.set()

        elif isinstance(event, h2.events.ConnectionTerminated):
            self._terminated = True
            last_stream_id = event.last_stream_id or 0
            logger.debug(
                f"HTTP/2 session to {self._origin} received GOAWAY "
                f"(last_stream={last_stream_id}, error={event.error_code})"
            )
            for stream_id, state in self._streams.items():
                if stream_id > last_stream_id and not state.ended:
                    state.ended = True
                    state.fail(ServerAborted("Stream refused by GOAWAY"))

    # -- lifecycle ---------------------------------------------------------

    def ref(self) -> None:
        """Mark one more request as in flight on this session."""
        self._refs += 1

    def unref(self) -> None:
        """Mark an in-flight request as finished."""
        self._refs = max(0, self._refs - 1)

    @property
    def is_referenced(self) -> bool:
        return self._refs > 0

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_available(self) -> bool:
        """False once the session is closed, closing or told to go away."""
        return not (self._closed or self._closing or self._terminated or self._stream.is_closed)

    @property
    def origin(self) -> Origin:
        return self._origin

    async def aclose(self) -> None:
        """Send GOAWAY, stop the reader task and close the socket."""
        if self._closing:
            return
        self._closing = True

        if not self._closed:
            async with self._write_lock:
                try:
                    self._h2_connection.close_connection()
                    await self._flush()
                except (OSError, h2.exceptions.ProtocolError) as e:
                    logger.warning(f"Error closing HTTP/2 session to {self._origin}: {e}")

        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass

        self._closed = True
        await self._stream.aclose()
        logger.debug(f"HTTP/2 session to {self._origin} closed")

    @property
    def metrics(self) -> Dict[str, Any]:
        return {
            "open_streams": len(self._streams),
            "references": self._refs,
            "available": self.is_available,
        }
