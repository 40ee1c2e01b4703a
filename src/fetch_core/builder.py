"""
Request descriptor builder for fetch_core.

Turns a RequestConfig into the canonical, immutable RequestDescriptor:
headers normalized, body encoded, content headers filled in and options
validated.
"""

import json
import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit

from .config import CONNECTION_OPTION_KEYS, DATA_FORMATS, PARSE_MODES, RequestConfig
from .decoders import ACCEPT_ENCODING
from .exceptions import InvalidRequest
from .http_primitives import PROTOCOLS, URL, RequestDescriptor, RequestOptions

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def build_request(config: RequestConfig) -> RequestDescriptor:
    """
    Build a RequestDescriptor from a RequestConfig.

    Raises:
        InvalidRequest: If the URL is missing or malformed, or an option
                        has an unsupported value
    """
    if not config.url:
        raise InvalidRequest("Missing url option from options for request method")
    if not isinstance(config.method, str) or not config.method:
        raise InvalidRequest(f"Invalid method: {config.method!r}")

    url = _build_url(config.url, config.path, config.query)

    headers: Dict[str, str] = {}
    for name, value in _header_items(config.headers):
        headers[name.lower()] = str(value)

    body, content_type = _encode_body(config)
    if body is not None:
        if content_type is not None and "content-type" not in headers:
            headers["content-type"] = content_type
        if "content-length" not in headers:
            headers["content-length"] = str(len(body))

    if config.compression and "accept-encoding" not in headers:
        accept = config.compression if isinstance(config.compression, str) else ACCEPT_ENCODING
        if accept:
            headers["accept-encoding"] = accept

    descriptor = RequestDescriptor(
        method=config.method.upper(),
        url=url,
        headers=tuple(headers.items()),
        body=body,
        options=_build_options(config),
    )
    logger.debug(f"Built request {descriptor.method} {descriptor.url}")
    return descriptor


def _build_url(url: str, path: Optional[str], query: Any) -> URL:
    if not isinstance(url, str):
        raise InvalidRequest(f"url must be a string, got {type(url).__name__}")

    if path or query:
        parts = urlsplit(url)
        new_path = parts.path
        if path:
            new_path = parts.path.rstrip("/") + "/" + path.lstrip("/")
        new_query = parts.query
        if query:
            try:
                encoded = urlencode(query, doseq=True)
            except TypeError as e:
                raise InvalidRequest(f"Invalid query parameters: {e}", e)
            new_query = f"{new_query}&{encoded}" if new_query else encoded
        url = urlunsplit((parts.scheme, parts.netloc, new_path, new_query, parts.fragment))

    try:
        return URL.parse(url)
    except ValueError as e:
        raise InvalidRequest(str(e), e)


def _header_items(headers: Any):
    if headers is None:
        return []
    if isinstance(headers, Mapping):
        return list(headers.items())
    try:
        return [(name, value) for name, value in headers]
    except (TypeError, ValueError) as e:
        raise InvalidRequest("headers must be a mapping or a sequence of pairs", e)


def _encode_body(config: RequestConfig) -> Tuple[Optional[bytes], Optional[str]]:
    if config.form is not None:
        if config.data is not None:
            raise InvalidRequest("data and form cannot be combined")
        return _form_encode(config.form), FORM_CONTENT_TYPE

    data = config.data
    if data is None:
        return None, None

    data_format = config.data_format
    if data_format is None:
        data_format = "raw" if isinstance(data, (bytes, bytearray, memoryview, str)) else "json"
    elif data_format not in DATA_FORMATS:
        raise InvalidRequest(f"Unknown data_format: {data_format!r}")

    if data_format == "json":
        try:
            return json.dumps(data).encode("utf-8"), JSON_CONTENT_TYPE
        except (TypeError, ValueError) as e:
            raise InvalidRequest(f"Body is not JSON serializable: {e}", e)

    if data_format == "form":
        return _form_encode(data), FORM_CONTENT_TYPE

    if isinstance(data, str):
        return data.encode("utf-8"), None
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data), None
    raise InvalidRequest(f"Raw body must be bytes or str, got {type(data).__name__}")


def _form_encode(form: Any) -> bytes:
    try:
        return urlencode(form, doseq=True).encode("ascii")
    except TypeError as e:
        raise InvalidRequest(f"Invalid form data: {e}", e)


def _check_connection_options(options: Any, name: str) -> Mapping[str, Any]:
    if options is None:
        return MappingProxyType({})
    if not isinstance(options, Mapping):
        raise InvalidRequest(f"{name} must be a mapping of connection options")
    unknown = sorted(set(options) - CONNECTION_OPTION_KEYS)
    if unknown:
        raise InvalidRequest(f"Unknown {name} option(s): {', '.join(unknown)}")
    return MappingProxyType(dict(options))


def _build_options(config: RequestConfig) -> RequestOptions:
    parse = config.parse
    if parse is not None and not callable(parse) and parse not in PARSE_MODES:
        raise InvalidRequest(f"Unknown parse mode: {parse!r}")

    if config.transport is not None and config.transport not in PROTOCOLS:
        raise InvalidRequest(f"Unknown transport: {config.transport!r}")

    if config.max_redirects is not None and config.max_redirects < 0:
        raise InvalidRequest("max_redirects must be >= 0 or None")
    if config.max_buffer is not None and config.max_buffer < 0:
        raise InvalidRequest("max_buffer must be >= 0 or None")
    if config.timeout is not None and config.timeout <= 0:
        raise InvalidRequest("timeout must be a positive number of seconds")

    if isinstance(config.http2, Mapping):
        http2_enabled = True
        http2_options = _check_connection_options(config.http2, "http2")
    else:
        http2_enabled = bool(config.http2)
        http2_options = MappingProxyType({})

    return RequestOptions(
        timeout=config.timeout,
        follow_redirects=bool(config.follow_redirects),
        max_redirects=config.max_redirects,
        max_buffer=config.max_buffer,
        stream=bool(config.stream),
        compression=config.compression,
        transport=config.transport,
        http2=http2_enabled,
        http2_options=http2_options,
        connection=_check_connection_options(config.connection, "connection"),
        parse=parse,
    )
