"""
Network stream interface for fetch_core.

A NetworkStream is the raw byte pipe produced by a NetworkBackend. The
HTTP/1.1 connections, HTTP/2 sessions and the ALPN probe only ever talk
to the network through this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class NetworkStream(ABC):
    """
    Interface for connected byte streams with async I/O operations.
    """

    @abstractmethod
    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        """
        Read data from the stream.

        Args:
            max_bytes: Maximum number of bytes to read.

        Returns:
            The data read, or ``b""`` once the peer has closed its side.

        Raises:
            OSError: If a network error occurs.
        """

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Write data to the stream and wait until it can be buffered.

        Raises:
            OSError: If a network error occurs.
        """

    @abstractmethod
    async def aclose(self) -> None:
        """Close the stream and release the socket."""

    @abstractmethod
    def get_extra_info(self, name: str) -> Optional[Any]:
        """
        Get extra information about the stream.

        Common names are "peername", "sockname", "ssl_object" and
        "alpn_protocol" (the protocol selected during the TLS handshake).
        """

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """True once the stream was closed locally or the peer hung up."""

    @property
    def alpn_protocol(self) -> Optional[str]:
        """The ALPN protocol negotiated for this stream, if any."""
        return self.get_extra_info("alpn_protocol")
