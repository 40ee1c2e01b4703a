"""
Request executor for fetch_core.

Runs a single request attempt: chooses the protocol, takes a pooled
connection, sends the request and returns as soon as the response head
has arrived. The body stays on the wire inside the returned RawResponse.
"""

import asyncio
import logging

from .connection_pool import ConnectionPool
from .exceptions import ProtocolNegotiationError, Timeout
from .http_primitives import HTTP11, HTTP2, RawResponse, RequestDescriptor
from .negotiation import TransportNegotiator
from .streams import HTTP11ResponseStream, HTTP2ResponseStream

logger = logging.getLogger(__name__)

HTTP2_TRANSPORT = "http2"


class RequestExecutor:
    """
    Executes one request attempt against the pool.

    The request timeout bounds connect, send and the wait for the response
    head; it is then reused as the idle timeout for every body read.
    """

    def __init__(self, negotiator: TransportNegotiator, pool: ConnectionPool):
        self._negotiator = negotiator
        self._pool = pool

    async def execute(self, request: RequestDescriptor) -> RawResponse:
        """
        Execute a request and return its response head with a lazy body.

        Raises:
            Timeout: If the response head did not arrive within the timeout
            TransportError: On connect, TLS or I/O failures
            ServerAborted: If the server reset the stream
        """
        timeout = request.options.timeout
        try:
            return await asyncio.wait_for(self._execute(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(f"{request.method} {request.url} timed out after {timeout}s")
            raise Timeout(f"{request.method} {request.url} timed out", timeout)

    async def select_protocol(self, request: RequestDescriptor) -> str:
        options = request.options
        if options.transport is not None:
            return options.transport
        if not options.http2:
            return HTTP11
        return await self._negotiator.negotiate(
            request.origin, options.connection_overrides(HTTP2)
        )

    async def _execute(self, request: RequestDescriptor) -> RawResponse:
        protocol = await self.select_protocol(request)

        if protocol == HTTP2:
            try:
                return await self._execute_http2(request)
            except ProtocolNegotiationError as e:
                if request.options.transport == HTTP2:
                    raise
                logger.debug(f"Falling back to HTTP/1.1 for {request.origin}: {e}")
                self._negotiator.remember(request.origin, HTTP11)

        return await self._execute_http11(request)

    async def _execute_http11(self, request: RequestDescriptor) -> RawResponse:
        overrides = request.options.connection_overrides(HTTP11)
        agent = await self._pool.acquire(request.origin, HTTP11, overrides)
        connection = await agent.connect(request.origin, overrides)

        status_code, headers = await connection.handle_request(request)
        return RawResponse(
            status_code=status_code,
            headers=headers,
            stream=HTTP11ResponseStream(connection, request.options.timeout),
            transport=request.url.scheme,
            url=str(request.url),
        )

    async def _execute_http2(self, request: RequestDescriptor) -> RawResponse:
        overrides = request.options.connection_overrides(HTTP2)
        session = await self._pool.acquire(request.origin, HTTP2, overrides)

        session.ref()
        stream_id = None
        try:
            stream_id = await session.send_request(request)
            status_code, headers = await session.receive_response(stream_id)
        except BaseException:
            try:
                if stream_id is not None:
                    await session.close_stream(stream_id, reset=True)
            finally:
                session.unref()
            raise

        logger.debug(f"{request.method} {request.url} -> {status_code} on HTTP/2 stream {stream_id}")
        return RawResponse(
            status_code=status_code,
            headers=headers,
            stream=HTTP2ResponseStream(session, stream_id, request.options.timeout),
            transport=HTTP2_TRANSPORT,
            url=str(request.url),
        )
