"""
Streaming framework for fetch_core.

Response bodies are exposed as ByteStream objects: async iterables of
byte chunks that read from the network only as they are consumed. A
stream releases whatever it holds (an HTTP/1.1 connection, an HTTP/2
stream and session reference, a wrapped source) exactly once, either when
it reaches end-of-data or when it is closed early.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional

from .decoders import ContentDecoder

if TYPE_CHECKING:
    from .http11 import HTTP11Connection  # Forward reference
    from .http2 import HTTP2Session


class ByteStream(ABC):
    """
    Base class for response body streams.

    Subclasses implement ``_receive`` (next chunk, or None at end of data)
    and ``_release`` (called once; ``complete`` tells whether the body was
    read to the end).
    """

    def __init__(self) -> None:
        self._closed = False
        self._bytes_read = 0

    @abstractmethod
    async def _receive(self) -> Optional[bytes]:
        pass

    @abstractmethod
    async def _release(self, complete: bool) -> None:
        pass

    def __aiter__(self) -> "ByteStream":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration

        try:
            chunk = await self._receive()
            while chunk == b"":
                chunk = await self._receive()
        except BaseException:
            await self.aclose()
            raise

        if chunk is None:
            self._closed = True
            await self._release(complete=True)
            raise StopAsyncIteration

        self._bytes_read += len(chunk)
        return chunk

    async def aread(self) -> bytes:
        """Read the rest of the stream and return it as bytes."""
        chunks = []
        async for chunk in self:
            chunks.append(chunk)
        return b"".join(chunks)

    async def aclose(self) -> None:
        """Stop reading and release the underlying resources."""
        if not self._closed:
            self._closed = True
            await self._release(complete=False)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bytes_read(self) -> int:
        """Number of bytes handed out so far."""
        return self._bytes_read


class BytesStream(ByteStream):
    """A ByteStream over chunks already in memory."""

    def __init__(self, chunks: List[bytes]) -> None:
        super().__init__()
        self._chunks = list(chunks)

    async def _receive(self) -> Optional[bytes]:
        return self._chunks.pop(0) if self._chunks else None

    async def _release(self, complete: bool) -> None:
        self._chunks = []


class HTTP11ResponseStream(ByteStream):
    """
    Body of a response received on an HTTP/1.1 connection.

    Releasing the stream hands the connection back to its agent; if the
    body was not read to the end the connection cannot be reused and is
    closed instead.
    """

    def __init__(self, connection: "HTTP11Connection", read_timeout: Optional[float] = None) -> None:
        super().__init__()
        self._connection = connection
        self._read_timeout = read_timeout

    async def _receive(self) -> Optional[bytes]:
        return await self._connection.receive_body_chunk(self._read_timeout)

    async def _release(self, complete: bool) -> None:
        await self._connection.response_closed()


class HTTP2ResponseStream(ByteStream):
    """
    Body of a response received on one stream of an HTTP/2 session.

    Releasing resets the stream if it is still open and drops the
    session reference taken for the request.
    """

    def __init__(self, session: "HTTP2Session", stream_id: int, read_timeout: Optional[float] = None) -> None:
        super().__init__()
        self._session = session
        self._stream_id = stream_id
        self._read_timeout = read_timeout

    async def _receive(self) -> Optional[bytes]:
        return await self._session.receive_data(self._stream_id, self._read_timeout)

    async def _release(self, complete: bool) -> None:
        try:
            await self._session.close_stream(self._stream_id, reset=not complete)
        finally:
            self._session.unref()


class DecodingStream(ByteStream):
    """
    Decorates another ByteStream, passing every chunk through a
    ContentDecoder.

    Decoder failures surface as DecodeError and close the source.
    """

    def __init__(self, source: ByteStream, decoder: ContentDecoder) -> None:
        super().__init__()
        self._source = source
        self._decoder = decoder
        self._source_done = False

    async def _receive(self) -> Optional[bytes]:
        while not self._source_done:
            try:
                chunk = await self._source.__anext__()
            except StopAsyncIteration:
                self._source_done = True
                return self._decoder.flush() or None

            decoded = self._decoder.decode(chunk)
            if decoded:
                return decoded
        return None

    async def _release(self, complete: bool) -> None:
        await self._source.aclose()

    @property
    def source(self) -> ByteStream:
        return self._source
