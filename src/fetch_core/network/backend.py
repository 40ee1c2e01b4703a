"""
Network backend interface for fetch_core.

The backend is the only place that knows how to open sockets and run TLS
handshakes. Everything above it receives ready NetworkStream objects.
"""

import ssl
from abc import ABC, abstractmethod
from typing import List, Optional

from .stream import NetworkStream


class NetworkBackend(ABC):
    """
    Interface for network backend implementations.
    """

    @abstractmethod
    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
    ) -> NetworkStream:
        """
        Connect to a plain TCP endpoint.

        Raises:
            OSError: If the connection fails.
            asyncio.TimeoutError: If the connection times out.
        """

    @abstractmethod
    async def connect_tls(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> NetworkStream:
        """
        Connect to a TCP endpoint and run a TLS handshake on it.

        Args:
            host: Hostname, also used for SNI and certificate verification.
            port: Port number.
            timeout: Optional timeout in seconds for connect + handshake.
            alpn_protocols: ALPN protocols to advertise, e.g.
                            ``["h2", "http/1.1"]``. Ignored when an explicit
                            ``ssl_context`` is given.
            ssl_context: Optional pre-built context to use instead of the
                         backend default.

        Returns:
            A NetworkStream whose ``alpn_protocol`` reports the protocol the
            server selected.

        Raises:
            OSError: If the connection or the handshake fails.
            asyncio.TimeoutError: If the handshake times out.
        """
