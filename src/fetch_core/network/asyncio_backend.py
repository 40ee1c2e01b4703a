"""
asyncio based network backend.

This is the backend used by default: sockets and TLS come from the
running event loop via asyncio.open_connection.
"""

import asyncio
import logging
import ssl
from typing import Any, List, Optional

from .backend import NetworkBackend
from .stream import NetworkStream
from .utils import create_ssl_context, normalize_host

logger = logging.getLogger(__name__)


class AsyncioNetworkStream(NetworkStream):
    """NetworkStream over an asyncio StreamReader/StreamWriter pair."""

    DEFAULT_READ_SIZE = 65536  # 64KB chunks

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        return await self._reader.read(max_bytes or self.DEFAULT_READ_SIZE)

    async def write(self, data: bytes) -> None:
        self._writer.write(data)
        await self._writer.drain()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (OSError, ssl.SSLError) as e:
            # The peer may already be gone; the socket is released either way.
            logger.debug(f"Error while closing stream: {e}")

    def get_extra_info(self, name: str) -> Optional[Any]:
        if name == "alpn_protocol":
            ssl_object = self._writer.get_extra_info("ssl_object")
            return ssl_object.selected_alpn_protocol() if ssl_object else None
        return self._writer.get_extra_info(name)

    @property
    def is_closed(self) -> bool:
        return self._closed or self._reader.at_eof() or self._writer.is_closing()


class AsyncioNetworkBackend(NetworkBackend):
    """NetworkBackend that opens connections on the running asyncio loop."""

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
    ) -> AsyncioNetworkStream:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(normalize_host(host), port),
            timeout=timeout,
        )
        logger.debug(f"TCP connection established to {host}:{port}")
        return AsyncioNetworkStream(reader, writer)

    async def connect_tls(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> AsyncioNetworkStream:
        if ssl_context is None:
            ssl_context = create_ssl_context(alpn_protocols=alpn_protocols)

        hostname = normalize_host(host)
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(
                hostname,
                port,
                ssl=ssl_context,
                server_hostname=hostname,
            ),
            timeout=timeout,
        )
        stream = AsyncioNetworkStream(reader, writer)
        logger.debug(
            f"TLS connection established to {host}:{port} "
            f"(alpn={stream.alpn_protocol})"
        )
        return stream
