"""
Mock network implementations for testing.

MockNetworkStream serves canned bytes and records everything written to
it; MockNetworkBackend hands out such streams and simulates ALPN.
"""

from typing import Any, Dict, List, Optional, Tuple

from .backend import NetworkBackend
from .stream import NetworkStream


class MockNetworkStream(NetworkStream):
    """
    In-memory network stream.

    Reads return the data given at construction (or added later with
    ``add_data``) and then ``b""``, like a peer that closed its side.
    """

    def __init__(self, data: bytes = b"", alpn_protocol: Optional[str] = None):
        self._data = data
        self._position = 0
        self._closed = False
        self._extra_info: Dict[str, Any] = {"alpn_protocol": alpn_protocol}
        self._write_buffer: List[bytes] = []
        self.read_calls = 0

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        if self._closed:
            raise OSError("Stream is closed")

        self.read_calls += 1
        if self._position >= len(self._data):
            return b""

        if max_bytes is None:
            end = len(self._data)
        else:
            end = min(self._position + max_bytes, len(self._data))
        result = self._data[self._position:end]
        self._position = end
        return result

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise OSError("Stream is closed")
        self._write_buffer.append(data)

    async def aclose(self) -> None:
        self._closed = True

    def get_extra_info(self, name: str) -> Optional[Any]:
        return self._extra_info.get(name)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def written_data(self) -> bytes:
        """All data that was written to the stream."""
        return b"".join(self._write_buffer)

    def set_extra_info(self, name: str, value: Any) -> None:
        self._extra_info[name] = value

    def add_data(self, data: bytes) -> None:
        """Make more data available for reading."""
        self._data += data


class MockNetworkBackend(NetworkBackend):
    """
    Mock network backend for testing.

    Args:
        responses: Canned byte payloads; each new connection is served the
                   next one (an empty stream once they run out).
        server_alpn: The protocol the simulated TLS server selects when the
                     client advertises it.
        error: When set, every connect attempt raises this exception.
    """

    def __init__(
        self,
        responses: Optional[List[bytes]] = None,
        server_alpn: Optional[str] = "http/1.1",
        error: Optional[BaseException] = None,
    ):
        self._responses = list(responses or [])
        self._server_alpn = server_alpn
        self._error = error
        self.streams: List[MockNetworkStream] = []
        self.connects: List[Tuple[str, str, int, Optional[List[str]]]] = []

    def _next_stream(self, alpn_protocol: Optional[str]) -> MockNetworkStream:
        data = self._responses.pop(0) if self._responses else b""
        stream = MockNetworkStream(data, alpn_protocol=alpn_protocol)
        self.streams.append(stream)
        return stream

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
    ) -> MockNetworkStream:
        self.connects.append(("tcp", host, port, None))
        if self._error is not None:
            raise self._error
        return self._next_stream(None)

    async def connect_tls(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
        ssl_context: Any = None,
    ) -> MockNetworkStream:
        self.connects.append(("tls", host, port, alpn_protocols))
        if self._error is not None:
            raise self._error

        selected = None
        if alpn_protocols and self._server_alpn in alpn_protocols:
            selected = self._server_alpn
        return self._next_stream(selected)
