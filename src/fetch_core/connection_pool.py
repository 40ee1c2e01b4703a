"""
Connection pool for fetch_core.

The pool owns every reusable transport resource of a client: one
HTTP11Agent per scheme, each keeping keep-alive HTTP/1.1 connections per
origin, and at most one live HTTP/2 session per origin.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Union

from .exceptions import ProtocolNegotiationError, TransportError
from .http11 import HTTP11Connection
from .http2 import HTTP2Session
from .http_primitives import HTTP11, HTTP2, Origin
from .negotiation import tls_context_for
from .network.backend import NetworkBackend
from .network.stream import NetworkStream

logger = logging.getLogger(__name__)


async def _open_stream(
    backend: NetworkBackend,
    origin: Origin,
    connection_options: Mapping[str, Any],
    alpn_protocols: List[str],
) -> NetworkStream:
    timeout = connection_options.get("connect_timeout")
    try:
        if origin.scheme == "https":
            return await backend.connect_tls(
                origin.host,
                origin.port,
                timeout=timeout,
                alpn_protocols=alpn_protocols,
                ssl_context=tls_context_for(connection_options, alpn_protocols),
            )
        return await backend.connect_tcp(origin.host, origin.port, timeout=timeout)
    except (OSError, asyncio.TimeoutError) as e:
        logger.error(f"Failed to create connection to {origin}: {e}")
        raise TransportError(f"Failed to connect to {origin}: {e}", e)


class HTTP11Agent:
    """
    Keep-alive agent for one scheme.

    Concurrent requests share the agent; each one gets its own
    HTTP11Connection, reused afterwards while it stays idle.
    """

    def __init__(
        self,
        scheme: str,
        backend: NetworkBackend,
        keep_alive_timeout: Optional[float] = None,
    ):
        self._scheme = scheme
        self._backend = backend
        self._keep_alive_timeout = keep_alive_timeout

        # Connection storage: {origin -> [connections]}
        self._connections: Dict[Origin, List[HTTP11Connection]] = defaultdict(list)

        self._total_connections_created = 0
        self._total_connections_reused = 0

    async def connect(
        self,
        origin: Origin,
        connection_options: Optional[Mapping[str, Any]] = None,
    ) -> HTTP11Connection:
        """
        Get a connection for the origin: an idle one if available,
        otherwise a new one.

        Raises:
            TransportError: If a new connection cannot be opened
        """
        connections = self._connections[origin]

        for connection in list(connections):
            if connection.is_closed:
                connections.remove(connection)
            elif connection.has_expired():
                connections.remove(connection)
                await connection.close()

        for connection in connections:
            if connection.is_idle:
                self._total_connections_reused += 1
                logger.debug(f"Reusing connection to {origin}")
                return connection

        stream = await _open_stream(self._backend, origin, connection_options or {}, [HTTP11])
        connection = HTTP11Connection(
            stream=stream,
            origin=origin,
            keep_alive_timeout=self._keep_alive_timeout,
        )
        connections.append(connection)
        self._total_connections_created += 1
        logger.debug(f"Created new connection to {origin}")
        return connection

    async def aclose(self) -> None:
        """Close every connection owned by the agent."""
        for connections in self._connections.values():
            for connection in connections:
                await connection.close()
        self._connections.clear()

    @property
    def scheme(self) -> str:
        return self._scheme

    @property
    def metrics(self) -> Dict[str, Any]:
        return {
            "total_connections_created": self._total_connections_created,
            "total_connections_reused": self._total_connections_reused,
            "connections_per_origin": {
                str(origin): len(connections)
                for origin, connections in self._connections.items()
            },
        }


class ConnectionPool:
    """
    Pool of HTTP/1.1 agents and HTTP/2 sessions.

    HTTP/2 session creation is serialized per origin, so concurrent
    acquires never open two sessions for the same origin. Dead sessions
    are replaced lazily on the next acquire.
    """

    DEFAULT_KEEP_ALIVE_TIMEOUT = 300.0

    def __init__(
        self,
        backend: NetworkBackend,
        keep_alive_timeout: Optional[float] = None,
    ):
        """
        Initialize connection pool.

        Args:
            backend: Network backend to use for connections
            keep_alive_timeout: Seconds an idle HTTP/1.1 connection stays reusable
        """
        self._backend = backend
        self._keep_alive_timeout = keep_alive_timeout or self.DEFAULT_KEEP_ALIVE_TIMEOUT
        self._agents: Dict[str, HTTP11Agent] = {}
        self._sessions: Dict[Origin, HTTP2Session] = {}
        self._session_locks: Dict[Origin, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._total_sessions_created = 0
        self._closed = False

        logger.debug(f"Connection pool initialized: keep_alive_timeout={self._keep_alive_timeout}")

    async def acquire(
        self,
        origin: Origin,
        protocol: str,
        connection_options: Optional[Mapping[str, Any]] = None,
    ) -> Union[HTTP11Agent, HTTP2Session]:
        """
        Get the pooled resource for an origin and protocol.

        Returns:
            The HTTP11Agent for the origin's scheme ("http/1.1") or the
            HTTP2Session for the origin ("h2").

        Raises:
            TransportError: If the pool is closed or a session cannot be opened
            ProtocolNegotiationError: If the server did not select h2
        """
        if self._closed:
            raise TransportError("Connection pool is closed")

        if protocol == HTTP2:
            return await self._get_session(origin, connection_options or {})
        return self.agent_for(origin.scheme)

    def agent_for(self, scheme: str) -> HTTP11Agent:
        agent = self._agents.get(scheme)
        if agent is None:
            agent = self._agents[scheme] = HTTP11Agent(
                scheme, self._backend, keep_alive_timeout=self._keep_alive_timeout
            )
        return agent

    async def _get_session(self, origin: Origin, connection_options: Mapping[str, Any]) -> HTTP2Session:
        async with self._session_locks[origin]:
            session = self._sessions.get(origin)
            if session is not None and session.is_available:
                return session

            if session is not None:
                logger.debug(f"Replacing dead HTTP/2 session to {origin}")
                await session.aclose()

            stream = await _open_stream(self._backend, origin, connection_options, [HTTP2, HTTP11])
            negotiated = stream.alpn_protocol
            if origin.scheme == "https" and negotiated != HTTP2:
                await stream.aclose()
                raise ProtocolNegotiationError(
                    f"{origin} did not negotiate h2 (got {negotiated})", negotiated
                )

            session = HTTP2Session(stream, origin)
            try:
                await session.start()
            except OSError as e:
                await stream.aclose()
                raise TransportError(f"HTTP/2 preface to {origin} failed: {e}", e)

            self._sessions[origin] = session
            self._total_sessions_created += 1
            return session

    async def aclose(self) -> None:
        """Close every pooled HTTP/2 session and HTTP/1.1 connection."""
        self._closed = True

        for session in list(self._sessions.values()):
            await session.aclose()
        self._sessions.clear()

        for agent in self._agents.values():
            await agent.aclose()

        logger.debug("Connection pool closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def session_for(self, origin: Origin) -> Optional[HTTP2Session]:
        """The pooled HTTP/2 session for an origin, if any (live or not)."""
        return self._sessions.get(origin)

    @property
    def metrics(self) -> Dict[str, Any]:
        """
        Get pool metrics.
        """
        return {
            "agents": {scheme: agent.metrics for scheme, agent in self._agents.items()},
            "sessions": {str(origin): session.metrics for origin, session in self._sessions.items()},
            "total_sessions_created": self._total_sessions_created,
            "keep_alive_timeout": self._keep_alive_timeout,
        }

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()
