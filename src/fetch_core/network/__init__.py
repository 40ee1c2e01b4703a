"""
Network backend components for fetch_core.

This package provides the low-level networking abstractions: the
NetworkBackend capability that connects (TCP, TLS with ALPN) and the
NetworkStream byte pipes it produces.
"""

from .backend import NetworkBackend
from .stream import NetworkStream
from .asyncio_backend import AsyncioNetworkBackend, AsyncioNetworkStream
from .mock import MockNetworkBackend, MockNetworkStream
from .utils import (
    create_ssl_context,
    format_host_header,
    is_ipv6_address,
    normalize_host,
)

__all__ = [
    "NetworkBackend",
    "NetworkStream",
    "AsyncioNetworkBackend",
    "AsyncioNetworkStream",
    "MockNetworkBackend",
    "MockNetworkStream",
    "create_ssl_context",
    "format_host_header",
    "is_ipv6_address",
    "normalize_host",
]
