"""
HTTP/1.1 connection implementation for fetch_core.

This module implements the HTTP11Connection class that manages
HTTP/1.1 protocol communication over a NetworkStream using h11.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import h11

from .exceptions import FetchError, ServerAborted, Timeout, TransportError
from .http_primitives import Header, Origin, RequestDescriptor
from .network.stream import NetworkStream

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """States of an HTTP/1.1 connection."""
    NEW = "new"           # Connection created, not yet used
    ACTIVE = "active"     # Connection handling a request
    IDLE = "idle"         # Connection available for reuse
    CLOSED = "closed"     # Connection closed, cannot be reused


class HTTP11Connection:
    """
    HTTP/1.1 connection manager.

    Handles one request/response cycle at a time over a NetworkStream.
    The response body is pulled by HTTP11ResponseStream through
    ``receive_body_chunk``; once the body is released the connection either
    goes back to IDLE (keep-alive) or is closed.
    """

    DEFAULT_KEEP_ALIVE_TIMEOUT = 300.0  # 5 minutes
    READ_SIZE = 65536  # 64KB chunks

    def __init__(
        self,
        stream: NetworkStream,
        origin: Origin,
        keep_alive_timeout: Optional[float] = None,
    ):
        """
        Initialize HTTP/1.1 connection.

        Args:
            stream: The NetworkStream to use for communication
            origin: The origin this connection is bound to
            keep_alive_timeout: Seconds an idle connection stays reusable
        """
        self._stream = stream
        self._origin = origin
        self._h11_connection = h11.Connection(h11.CLIENT)
        self._state = ConnectionState.NEW
        self._idle_since: Optional[float] = None
        self._keep_alive_timeout = keep_alive_timeout or self.DEFAULT_KEEP_ALIVE_TIMEOUT

        # Metrics
        self._request_count = 0
        self._bytes_sent = 0
        self._bytes_received = 0
        self._errors_count = 0

        logger.debug(f"HTTP/1.1 connection initialized for {origin}")

    async def handle_request(self, request: RequestDescriptor) -> Tuple[int, List[Header]]:
        """
        Send a request and wait for the response head.

        The body is left on the wire for HTTP11ResponseStream.

        Args:
            request: The request to send

        Returns:
            The status code and the response headers

        Raises:
            TransportError: On I/O or protocol failures
        """
        self._acquire_connection()
        start_time = time.monotonic()
        self._request_count += 1

        try:
            await self._send_request(request)
            status_code, headers = await self._receive_response()
        except asyncio.CancelledError:
            # Deadline hit or caller gave up: the exchange is half done.
            await self._abort()
            raise
        except FetchError:
            self._errors_count += 1
            await self._abort()
            raise
        except (OSError, h11.ProtocolError) as e:
            self._errors_count += 1
            logger.error(
                f"Request {self._request_count} to {self._origin} failed: {e} "
                f"({time.monotonic() - start_time:.3f}s)"
            )
            await self._abort()
            raise TransportError(f"{request.method} {request.url} failed: {e}", e)

        logger.debug(
            f"Request {self._request_count}: {request.method} {request.url.target} "
            f"-> {status_code} ({time.monotonic() - start_time:.3f}s)"
        )
        return status_code, headers

    async def _send_request(self, request: RequestDescriptor) -> None:
        headers = list(request.headers)
        if not any(name == "host" for name, _ in headers):
            headers.insert(0, ("host", request.url.authority))

        await self._send_event(
            h11.Request(method=request.method, target=request.url.target, headers=headers)
        )
        if request.body:
            await self._send_event(h11.Data(data=request.body))
        await self._send_event(h11.EndOfMessage())

    async def _send_event(self, event: h11.Event) -> None:
        data = self._h11_connection.send(event)
        if data:
            await self._stream.write(data)
            self._bytes_sent += len(data)

    async def _read_into_parser(self) -> None:
        data = await self._stream.read(self.READ_SIZE)
        # An empty read tells h11 the peer closed; it decides whether that
        # ends the body or is an error.
        self._h11_connection.receive_data(data)
        self._bytes_received += len(data)

    async def _receive_response(self) -> Tuple[int, List[Header]]:
        while True:
            event = self._h11_connection.next_event()

            if event is h11.NEED_DATA:
                await self._read_into_parser()
                continue

            if isinstance(event, h11.Response):
                headers = [
                    (name.decode("latin-1"), value.decode("latin-1"))
                    for name, value in event.headers
                ]
                return event.status_code, headers

            if isinstance(event, h11.ConnectionClosed):
                raise TransportError("Connection closed before response headers were received")
            # InformationalResponse (1xx) and anything else: keep waiting.

    async def receive_body_chunk(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """
        Receive the next chunk of the response body.

        Args:
            timeout: Idle timeout for each network read

        Returns:
            Chunk of data or None at the end of the body

        Raises:
            Timeout: If a read takes longer than ``timeout``
            ServerAborted: If the server went away mid-body
        """
        while True:
            try:
                event = self._h11_connection.next_event()
                if event is h11.NEED_DATA:
                    await asyncio.wait_for(self._read_into_parser(), timeout=timeout)
                    continue
            except asyncio.TimeoutError:
                raise Timeout("No response body data received", timeout)
            except (OSError, h11.ProtocolError) as e:
                raise ServerAborted(str(e), e)

            if isinstance(event, h11.Data):
                return bytes(event.data)

            if isinstance(event, h11.EndOfMessage):
                return None

            if isinstance(event, h11.ConnectionClosed):
                raise ServerAborted("Connection closed by server")

    def _acquire_connection(self) -> None:
        if self._state == ConnectionState.CLOSED:
            raise TransportError("Connection is closed")

        if self._state == ConnectionState.ACTIVE:
            raise TransportError("Connection is busy")

        self._state = ConnectionState.ACTIVE

    def _can_reuse_connection(self) -> bool:
        return (
            self._h11_connection.our_state is h11.DONE
            and self._h11_connection.their_state is h11.DONE
            and not self._stream.is_closed
        )

    async def response_closed(self) -> None:
        """
        Called when the response body was fully consumed or abandoned.
        """
        if self._state != ConnectionState.ACTIVE:
            return

        if self._can_reuse_connection():
            self._h11_connection.start_next_cycle()
            self._state = ConnectionState.IDLE
            self._idle_since = time.monotonic()
        else:
            await self._abort()

    async def _abort(self) -> None:
        self._state = ConnectionState.CLOSED
        await self._stream.aclose()

    async def close(self) -> None:
        """
        Close the connection and cleanup resources.
        """
        if self._state != ConnectionState.CLOSED:
            await self._abort()
            logger.debug(f"Connection to {self._origin} closed after {self._request_count} requests")

    @property
    def origin(self) -> Origin:
        return self._origin

    @property
    def is_closed(self) -> bool:
        """Check if connection is closed."""
        return self._state == ConnectionState.CLOSED

    @property
    def is_idle(self) -> bool:
        """Check if connection is idle and the peer has not hung up."""
        return self._state == ConnectionState.IDLE and not self._stream.is_closed

    @property
    def is_new(self) -> bool:
        return self._state == ConnectionState.NEW

    def has_expired(self) -> bool:
        """
        Check if an idle connection can no longer be reused: it outlived
        the keep-alive timeout or the peer hung up.
        """
        if self._state != ConnectionState.IDLE or self._idle_since is None:
            return False
        if self._stream.is_closed:
            return True
        return (time.monotonic() - self._idle_since) > self._keep_alive_timeout

    @property
    def metrics(self) -> Dict[str, Any]:
        """
        Get connection metrics.
        """
        return {
            "request_count": self._request_count,
            "bytes_sent": self._bytes_sent,
            "bytes_received": self._bytes_received,
            "errors_count": self._errors_count,
            "state": self._state.value,
            "idle_since": self._idle_since,
        }
