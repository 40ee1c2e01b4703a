"""
Request configuration for fetch_core.

RequestConfig is the explicit, caller-facing option struct. Every field
is optional and documented with its default; the builder validates a
config once and turns it into a RequestDescriptor.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from .exceptions import InvalidRequest
from .http_primitives import ParseMode

DEFAULT_METHOD = "GET"
DEFAULT_MAX_REDIRECTS = 20
DEFAULT_MAX_BUFFER = 50_000_000  # bytes

PARSE_MODES = ("none", "string", "json")
DATA_FORMATS = ("json", "form", "raw")
CONNECTION_OPTION_KEYS = frozenset(
    ["verify", "ssl_context", "connect_timeout", "cert_file", "key_file"]
)

QueryParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


@dataclass(frozen=True)
class RequestConfig:
    """
    Options for one logical request.

    Attributes:
        url: Absolute http(s) URL. Required.
        method: HTTP method, default "GET".
        headers: Request headers; names are case-insensitive.
        query: Query parameters appended to the URL's query string.
        path: Relative path joined onto the URL's path.
        data: Request body. bytes/str are sent as-is, anything else is
            JSON-encoded unless ``data_format`` says otherwise.
        data_format: Force "json", "form" or "raw" encoding of ``data``.
        form: Mapping sent as application/x-www-form-urlencoded.
        timeout: Seconds to wait for the response headers (and between
            body chunks). None waits forever.
        follow_redirects: Follow responses carrying a location header.
        max_redirects: Redirects allowed per request, default 20. 0 allows
            none; None removes the limit.
        max_buffer: Largest body, in bytes, buffered in memory. Default
            50,000,000; None removes the limit. Ignored when streaming.
        stream: Return a StreamedResponse instead of buffering the body.
        compression: True advertises every supported codec, a string is
            sent as the accept-encoding value, False sends nothing.
        http2: Allow HTTP/2 for https origins. A mapping enables it and
            supplies connection overrides for HTTP/2 sessions only.
        transport: Force "h2" or "http/1.1" without probing. "h2" on an
            http URL speaks HTTP/2 with prior knowledge.
        connection: Pooled-connection overrides: verify, ssl_context,
            connect_timeout, cert_file, key_file.
        parse: "none" (bytes, default), "string", "json" or a callable
            receiving the body bytes.
    """

    url: Optional[str] = None
    method: str = DEFAULT_METHOD
    headers: Optional[Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]] = None
    query: Optional[QueryParams] = None
    path: Optional[str] = None
    data: Any = None
    data_format: Optional[str] = None
    form: Optional[QueryParams] = None
    timeout: Optional[float] = None
    follow_redirects: bool = False
    max_redirects: Optional[int] = DEFAULT_MAX_REDIRECTS
    max_buffer: Optional[int] = DEFAULT_MAX_BUFFER
    stream: bool = False
    compression: Union[bool, str] = True
    http2: Union[bool, Mapping[str, Any]] = True
    transport: Optional[str] = None
    connection: Optional[Mapping[str, Any]] = None
    parse: ParseMode = None

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_options(cls, url: Any = None, /, **options: Any) -> "RequestConfig":
        """
        Build a config from the forms callers use: a URL string, a
        RequestConfig, or a mapping of options, plus keyword options
        that take precedence.

        Raises:
            InvalidRequest: On unknown option names or a URL given twice
        """
        if isinstance(url, RequestConfig):
            return url.merged(**options)
        if isinstance(url, Mapping):
            options = {**url, **options}
        elif url is not None:
            if "url" in options:
                raise InvalidRequest("url given both positionally and as an option")
            options["url"] = url

        _check_option_names(options)
        return cls(**options)

    def merged(self, **options: Any) -> "RequestConfig":
        """Create a new config with ``options`` overriding this one."""
        _check_option_names(options)
        return replace(self, **options)

    def as_options(self) -> Dict[str, Any]:
        """
        Every field as an option, for layering over stored defaults.

        A config carries a value for every field, so all of them override
        the defaults; only a missing url is left out so a bound url applies.
        """
        options = {f.name: getattr(self, f.name) for f in fields(self)}
        if options["url"] is None:
            del options["url"]
        return options


def _check_option_names(options: Mapping[str, Any]) -> None:
    unknown = sorted(set(options) - set(RequestConfig.field_names()))
    if unknown:
        raise InvalidRequest(f"Unknown option(s): {', '.join(unknown)}")
