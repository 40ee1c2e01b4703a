"""
Client for fetch_core.

A Client owns the transport state of an application: the ALPN cache, the
connection pool, and the executor, redirect controller and response
pipeline built on them. The module-level ``request`` uses one default
client per event loop.
"""

import asyncio
import logging
import weakref
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .builder import build_request
from .config import RequestConfig
from .connection_pool import ConnectionPool
from .exceptions import InvalidRequest
from .executor import RequestExecutor
from .http_primitives import BufferedResponse, Response
from .negotiation import TransportNegotiator
from .network.asyncio_backend import AsyncioNetworkBackend
from .network.backend import NetworkBackend
from .parsers import parse_body
from .pipeline import ResponsePipeline
from .redirects import RedirectController

logger = logging.getLogger(__name__)

RequestFunction = Callable[..., Awaitable[Response]]


def _options_of(url: Any, options: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten the accepted call forms into one dict of present options."""
    if isinstance(url, RequestConfig):
        return {**url.as_options(), **options}
    if isinstance(url, Mapping):
        return {**url, **options}
    if url is None:
        return dict(options)
    if "url" in options:
        raise InvalidRequest("url given both positionally and as an option")
    return {**options, "url": url}


def bind_defaults(request_function: RequestFunction, url: Any = None, /, **defaults: Any) -> RequestFunction:
    """
    Wrap ``request_function`` so every call starts from ``defaults``.

    Options present in a call always win over the defaults; the stored
    defaults are copied once and never mutated.
    """
    base = _options_of(url, defaults)
    # Fail on unknown option names now rather than on first use.
    RequestConfig.from_options(**base)

    async def request_with_defaults(url: Any = None, /, **options: Any) -> Response:
        return await request_function(**{**base, **_options_of(url, options)})

    request_with_defaults.defaults = dict(base)  # type: ignore[attr-defined]
    return request_with_defaults


class Client:
    """
    HTTP client with its own ALPN cache and connection pool.

    Every collaborator can be injected, which is how tests swap in the
    mock backend or share a negotiator between clients.

    Example:
        async with Client() as client:
            response = await client.request("https://example.com/", parse="string")
    """

    DEFAULT_KEEP_ALIVE_TIMEOUT = 300.0

    def __init__(
        self,
        backend: Optional[NetworkBackend] = None,
        negotiator: Optional[TransportNegotiator] = None,
        pool: Optional[ConnectionPool] = None,
        keep_alive_timeout: Optional[float] = None,
    ):
        self._backend = backend or AsyncioNetworkBackend()
        self._negotiator = negotiator or TransportNegotiator(self._backend)
        self._pool = pool or ConnectionPool(
            self._backend,
            keep_alive_timeout=keep_alive_timeout or self.DEFAULT_KEEP_ALIVE_TIMEOUT,
        )
        self._executor = RequestExecutor(self._negotiator, self._pool)
        self._redirects = RedirectController(self._executor)
        self._pipeline = ResponsePipeline()

    async def request(self, url: Any = None, /, **options: Any) -> Response:
        """
        Perform a request.

        Args:
            url: URL string, RequestConfig or mapping of options
            **options: RequestConfig fields, overriding ``url``'s

        Returns:
            A BufferedResponse, or a StreamedResponse when ``stream=True``

        Raises:
            FetchError: Subclass naming the kind of failure
        """
        config = RequestConfig.from_options(url, **options)
        descriptor = build_request(config)

        raw, final_request = await self._redirects.resolve(descriptor)
        response = await self._pipeline.process(raw, final_request)

        if isinstance(response, BufferedResponse):
            response = parse_body(response, final_request.options.parse)
        return response

    def with_defaults(self, url: Any = None, /, **defaults: Any) -> RequestFunction:
        """Return a request function that layers ``defaults`` under every call."""
        return bind_defaults(self.request, url, **defaults)

    async def aclose(self) -> None:
        """Close every pooled connection."""
        await self._pool.aclose()

    @property
    def closed(self) -> bool:
        return self._pool.closed

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def negotiator(self) -> TransportNegotiator:
        return self._negotiator

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


_default_clients: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Client]" = (
    weakref.WeakKeyDictionary()
)


def default_client() -> Client:
    """The default client of the running event loop."""
    loop = asyncio.get_running_loop()
    client = _default_clients.get(loop)
    if client is None or client.closed:
        client = _default_clients[loop] = Client()
        logger.debug("Created default client")
    return client


async def request(url: Any = None, /, **options: Any) -> Response:
    """Perform a request with the default client. See Client.request."""
    return await default_client().request(url, **options)


def with_defaults(url: Any = None, /, **defaults: Any) -> RequestFunction:
    """Return a default-client request function layering ``defaults``."""
    return bind_defaults(request, url, **defaults)


async def aclose() -> None:
    """Close the default client of the running event loop, if any."""
    client = _default_clients.pop(asyncio.get_running_loop(), None)
    if client is not None:
        await client.aclose()
