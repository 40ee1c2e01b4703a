"""
fetch_core - async HTTP(S) client core

Sends one logical request and returns its response, choosing HTTP/2 or
HTTP/1.1 per origin through ALPN, pooling connections, following
redirects, decoding compressed bodies and enforcing buffer limits.
"""

__version__ = "0.1.0"
__author__ = "Developer"
__email__ = "dev@example.com"

# Import main components for easy access
from .builder import build_request
from .client import Client, aclose, request, with_defaults
from .config import RequestConfig
from .connection_pool import ConnectionPool, HTTP11Agent
from .decoders import SUPPORTED_ENCODINGS
from .exceptions import (
    DecodeError,
    FetchError,
    InvalidRequest,
    ParseError,
    ProtocolNegotiationError,
    ResponseTooLarge,
    ServerAborted,
    Timeout,
    TooManyRedirects,
    TransportError,
)
from .executor import RequestExecutor
from .http_primitives import (
    URL,
    BufferedResponse,
    Origin,
    RawResponse,
    RequestDescriptor,
    RequestOptions,
    Response,
    StreamedResponse,
)
from .negotiation import TransportNegotiator
from .parsers import parse_body
from .pipeline import ResponsePipeline
from .redirects import RedirectController
from .streams import ByteStream

__all__ = [
    "request",
    "with_defaults",
    "aclose",
    "Client",
    "RequestConfig",
    "build_request",
    "RequestDescriptor",
    "RequestOptions",
    "URL",
    "Origin",
    "RawResponse",
    "BufferedResponse",
    "StreamedResponse",
    "Response",
    "ByteStream",
    "TransportNegotiator",
    "ConnectionPool",
    "HTTP11Agent",
    "RequestExecutor",
    "RedirectController",
    "ResponsePipeline",
    "parse_body",
    "SUPPORTED_ENCODINGS",
    "FetchError",
    "InvalidRequest",
    "TransportError",
    "ProtocolNegotiationError",
    "Timeout",
    "ServerAborted",
    "TooManyRedirects",
    "ResponseTooLarge",
    "DecodeError",
    "ParseError",
]
