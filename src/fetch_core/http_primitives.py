"""
HTTP primitives for fetch_core.

This module defines the data structures that flow through a request:
the immutable RequestDescriptor built from caller options, the
RawResponse handed from the executor to the response pipeline, and the
BufferedResponse / StreamedResponse values returned to the caller.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterable,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    Union,
)
from urllib.parse import urlsplit

from typing_extensions import Literal

from .network.utils import format_host_header, normalize_host

if TYPE_CHECKING:
    from .streams import ByteStream  # Forward reference


# Type aliases for better readability
Header = Tuple[str, str]
Headers = Tuple[Header, ...]
ParseMode = Union[Literal["none", "string", "json"], Callable[[bytes], Any], None]
TransportToken = Literal["http", "https", "http2"]

HTTP11 = "http/1.1"
HTTP2 = "h2"
PROTOCOLS = (HTTP11, HTTP2)

DEFAULT_PORTS = {"http": 80, "https": 443}


class Origin(NamedTuple):
    """The (scheme, host, port) triple that keys pools and the ALPN cache."""
    scheme: str
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.scheme}://{format_host_header(self.host, self.port, self.scheme)}"


class URL(NamedTuple):
    """Immutable representation of an absolute http(s) URL."""
    scheme: str
    host: str
    port: int
    target: str  # path + query, as sent on the request line
    raw: str

    @classmethod
    def parse(cls, url: str) -> "URL":
        """
        Parse an absolute URL string.

        Raises:
            ValueError: If the URL is not absolute, has no host, uses a
                        scheme other than http/https or has a bad port.
        """
        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            raise ValueError(f"Bad URL protocol: {parts.scheme or '(none)'}:")
        if not parts.hostname:
            raise ValueError(f"No hostname found in URL: {url}")

        port = parts.port or DEFAULT_PORTS[scheme]
        target = parts.path or "/"
        if parts.query:
            target += "?" + parts.query

        return cls(
            scheme=scheme,
            host=normalize_host(parts.hostname),
            port=port,
            target=target,
            raw=url,
        )

    @property
    def origin(self) -> Origin:
        return Origin(self.scheme, self.host, self.port)

    @property
    def authority(self) -> str:
        """Value for the Host header / HTTP/2 :authority pseudo-header."""
        return format_host_header(self.host, self.port, self.scheme)

    def __str__(self) -> str:
        return self.raw


def get_header(headers: Iterable[Header], name: str) -> Optional[str]:
    """Get the first value of a header (case-insensitive), or None."""
    name = name.lower()
    for header_name, header_value in headers:
        if header_name.lower() == name:
            return header_value
    return None


def get_all_headers(headers: Iterable[Header], name: str) -> List[str]:
    """Get every value of a header (case-insensitive)."""
    name = name.lower()
    return [value for header_name, value in headers if header_name.lower() == name]


def set_header(headers: Headers, name: str, value: str) -> Headers:
    """Return new headers with ``name`` set to ``value``, replacing any existing value."""
    name = name.lower()
    return tuple(h for h in headers if h[0] != name) + ((name, value),)


def remove_headers(headers: Headers, names: Sequence[str]) -> Headers:
    """Return new headers without any of ``names``."""
    drop = {name.lower() for name in names}
    return tuple(h for h in headers if h[0] not in drop)


def _frozen_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class RequestOptions:
    """
    Per-request options carried by a RequestDescriptor.

    Defaults live in RequestConfig; by the time options reach this class
    they were validated by the builder.
    """

    timeout: Optional[float] = None
    follow_redirects: bool = False
    max_redirects: Optional[int] = 20
    max_buffer: Optional[int] = 50_000_000
    stream: bool = False
    compression: Union[bool, str] = True
    transport: Optional[str] = None
    http2: bool = True
    http2_options: Mapping[str, Any] = field(default_factory=_frozen_mapping)
    connection: Mapping[str, Any] = field(default_factory=_frozen_mapping)
    parse: ParseMode = None

    def connection_overrides(self, protocol: str) -> Mapping[str, Any]:
        """Pooled-connection overrides for a connection speaking ``protocol``."""
        if protocol == HTTP2 and self.http2_options:
            return MappingProxyType({**self.connection, **self.http2_options})
        return self.connection


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Immutable, canonical description of one request attempt.

    Once created the descriptor cannot be modified; redirect hops derive
    new descriptors with ``with_url`` / ``with_headers``.
    """

    method: str
    url: URL
    headers: Headers = ()
    body: Optional[bytes] = None
    options: RequestOptions = field(default_factory=RequestOptions)

    def with_url(self, url: Union[str, URL]) -> "RequestDescriptor":
        """Create a new descriptor targeting a different URL."""
        if isinstance(url, str):
            url = URL.parse(url)
        return replace(self, url=url)

    def with_headers(self, headers: Headers) -> "RequestDescriptor":
        """Create a new descriptor with different headers."""
        return replace(self, headers=tuple(headers))

    def get_header(self, name: str) -> Optional[str]:
        return get_header(self.headers, name)

    @property
    def origin(self) -> Origin:
        return self.url.origin


@dataclass
class RawResponse:
    """
    Response as produced by the executor: status and headers are known,
    the body is an unread ByteStream.
    """

    status_code: int
    headers: List[Header]
    stream: "ByteStream"
    transport: TransportToken
    url: str

    def get_header(self, name: str) -> Optional[str]:
        return get_header(self.headers, name)

    def get_all_headers(self, name: str) -> List[str]:
        return get_all_headers(self.headers, name)


@dataclass(frozen=True)
class BufferedResponse:
    """
    A fully read response.

    ``body`` holds the raw bytes, or the parsed value when a parse mode
    was requested. ``content`` always holds the raw (decoded) bytes.
    """

    status_code: int
    headers: List[Header]
    transport: TransportToken
    url: str
    request: RequestDescriptor
    body: Any = b""
    content: Optional[bytes] = None

    def __post_init__(self) -> None:
        if self.content is None:
            raw = bytes(self.body) if isinstance(self.body, (bytes, bytearray)) else b""
            object.__setattr__(self, "content", raw)

    def get_header(self, name: str) -> Optional[str]:
        return get_header(self.headers, name)

    def get_all_headers(self, name: str) -> List[str]:
        return get_all_headers(self.headers, name)

    def with_body(self, body: Any) -> "BufferedResponse":
        """Create a new response with a different body value."""
        return replace(self, body=body)

    def text(self) -> str:
        from .parsers import parse_body
        return parse_body(self, "string").body

    def json(self) -> Any:
        from .parsers import parse_body
        return parse_body(self, "json").body


@dataclass(frozen=True)
class StreamedResponse:
    """
    A response whose body is still on the wire.

    The caller owns ``stream``: iterate it to the end or close it (directly,
    via ``aclose`` or with ``async with``) to release the connection.
    """

    status_code: int
    headers: List[Header]
    transport: TransportToken
    url: str
    request: RequestDescriptor
    stream: "ByteStream"

    def get_header(self, name: str) -> Optional[str]:
        return get_header(self.headers, name)

    def get_all_headers(self, name: str) -> List[str]:
        return get_all_headers(self.headers, name)

    def __aiter__(self):
        return self.stream.__aiter__()

    async def aread(self) -> bytes:
        return await self.stream.aread()

    async def aclose(self) -> None:
        await self.stream.aclose()

    async def __aenter__(self) -> "StreamedResponse":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


Response = Union[BufferedResponse, StreamedResponse]
