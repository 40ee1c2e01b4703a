"""
Transport negotiation for fetch_core.

The TransportNegotiator decides whether an origin is spoken to over
HTTP/2 or HTTP/1.1. For https origins it runs a short TLS probe
advertising both protocols and caches what the server selected.
"""

import asyncio
import logging
import ssl
from typing import Any, Dict, Mapping, Optional

from .exceptions import TransportError
from .http_primitives import HTTP11, HTTP2, Origin
from .network.backend import NetworkBackend
from .network.utils import create_ssl_context

logger = logging.getLogger(__name__)

ALPN_PROTOCOLS = [HTTP2, HTTP11]


def tls_context_for(
    connection_options: Mapping[str, Any],
    alpn_protocols: list,
) -> Optional[ssl.SSLContext]:
    """
    Build the SSL context implied by pooled-connection overrides.

    Returns None when the overrides do not touch TLS, letting the backend
    use its default context.
    """
    context = connection_options.get("ssl_context")
    if context is not None:
        return context
    if "verify" not in connection_options and "cert_file" not in connection_options:
        return None
    return create_ssl_context(
        alpn_protocols=alpn_protocols,
        verify=connection_options.get("verify", True),
        cert_file=connection_options.get("cert_file"),
        key_file=connection_options.get("key_file"),
    )


class TransportNegotiator:
    """
    ALPN cache plus the protocol decision for an origin.

    Cache entries never expire: a stale "h2" entry is corrected by
    ``remember`` when the real connection negotiates something else.

    Args:
        backend: Network backend used for the probe connections
        cache: Optional dict to use as the ALPN cache (shared or pre-seeded)
    """

    def __init__(self, backend: NetworkBackend, cache: Optional[Dict[Origin, str]] = None):
        self._backend = backend
        self._cache: Dict[Origin, str] = cache if cache is not None else {}

    async def negotiate(
        self,
        origin: Origin,
        connection_options: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Return the protocol token ("h2" or "http/1.1") to use for ``origin``.

        Raises:
            TransportError: If the TLS probe fails
        """
        if origin.scheme != "https":
            return HTTP11

        cached = self._cache.get(origin)
        if cached is not None:
            return cached

        protocol = await self._probe(origin, connection_options or {})
        self._cache[origin] = protocol
        logger.debug(f"ALPN for {origin}: {protocol}")
        return protocol

    async def _probe(self, origin: Origin, connection_options: Mapping[str, Any]) -> str:
        try:
            stream = await self._backend.connect_tls(
                origin.host,
                origin.port,
                timeout=connection_options.get("connect_timeout"),
                alpn_protocols=ALPN_PROTOCOLS,
                ssl_context=tls_context_for(connection_options, ALPN_PROTOCOLS),
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"ALPN probe to {origin} failed: {e}", e)

        try:
            return stream.alpn_protocol or HTTP11
        finally:
            await stream.aclose()

    def remember(self, origin: Origin, protocol: str) -> None:
        """Overwrite the cached decision for an origin."""
        self._cache[origin] = protocol

    def cached(self, origin: Origin) -> Optional[str]:
        return self._cache.get(origin)
