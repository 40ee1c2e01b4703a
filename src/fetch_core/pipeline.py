"""
Response pipeline for fetch_core.

Turns the final RawResponse into what the caller receives: decoding the
content-encoding, then either handing the stream over or buffering the
body under the max_buffer cap.
"""

import logging
from typing import Optional

from .decoders import get_decoder
from .exceptions import ResponseTooLarge
from .http_primitives import BufferedResponse, RawResponse, RequestDescriptor, Response, StreamedResponse
from .streams import ByteStream, DecodingStream

logger = logging.getLogger(__name__)


def _declared_length(raw: RawResponse) -> Optional[int]:
    value = raw.get_header("content-length")
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


class ResponsePipeline:
    """Decode and, unless streaming, buffer a response body."""

    async def process(self, raw: RawResponse, request: RequestDescriptor) -> Response:
        """
        Raises:
            ResponseTooLarge: If the body is, or grows, larger than max_buffer
            DecodeError: If the content-encoding cannot be decoded
            ServerAborted: If the server disconnects mid-body
        """
        options = request.options
        stream: ByteStream = raw.stream

        if not options.stream and options.max_buffer is not None:
            declared = _declared_length(raw)
            if declared is not None and declared > options.max_buffer:
                await stream.aclose()
                raise ResponseTooLarge(declared, options.max_buffer)

        decoder = get_decoder(raw.get_header("content-encoding"))
        if decoder is not None:
            stream = DecodingStream(stream, decoder)

        if options.stream:
            return StreamedResponse(
                status_code=raw.status_code,
                headers=raw.headers,
                transport=raw.transport,
                url=raw.url,
                request=request,
                stream=stream,
            )

        body = await self.buffer(stream, options.max_buffer)
        return BufferedResponse(
            status_code=raw.status_code,
            headers=raw.headers,
            transport=raw.transport,
            url=raw.url,
            request=request,
            body=body,
            content=body,
        )

    @staticmethod
    async def buffer(stream: ByteStream, max_buffer: Optional[int]) -> bytes:
        """Read a stream to the end, closing it if it outgrows ``max_buffer``."""
        chunks = []
        size = 0
        async for chunk in stream:
            size += len(chunk)
            if max_buffer is not None and size > max_buffer:
                await stream.aclose()
                logger.debug(f"Response body exceeded {max_buffer} bytes, aborting read")
                raise ResponseTooLarge(size, max_buffer)
            chunks.append(chunk)
        return b"".join(chunks)
