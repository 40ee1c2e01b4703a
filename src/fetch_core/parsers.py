"""
Body parsers for fetch_core.
"""

import json
from email.message import Message

from .exceptions import ParseError
from .http_primitives import BufferedResponse, ParseMode

DEFAULT_CHARSET = "utf-8"


def charset_of(content_type: str) -> str:
    """Charset parameter of a content-type value, or utf-8."""
    if not content_type:
        return DEFAULT_CHARSET
    message = Message()
    message["content-type"] = content_type
    charset = message.get_param("charset")
    if not isinstance(charset, str) or not charset:
        return DEFAULT_CHARSET
    return charset.strip("'\"").lower()


def _decode_text(response: BufferedResponse, errors: str = "replace") -> str:
    charset = charset_of(response.get_header("content-type") or "")
    try:
        return response.content.decode(charset, errors=errors)
    except LookupError:
        return response.content.decode(DEFAULT_CHARSET, errors=errors)


def parse_body(response: BufferedResponse, mode: ParseMode) -> BufferedResponse:
    """
    Replace the body of a buffered response by its parsed value.

    Parsing always starts from the raw ``content``, so a response can be
    parsed again in another mode.

    Modes: None or "none" keeps the bytes, "string" decodes text, "json"
    decodes JSON (a 204 response gives None), a callable receives the bytes
    and its return value becomes the body.

    Raises:
        ParseError: If the body is not valid JSON (or not valid text in
                    its charset) in "json" mode
    """
    if mode is None or mode == "none":
        return response.with_body(response.content)

    if callable(mode):
        return response.with_body(mode(response.content))

    if mode == "string":
        return response.with_body(_decode_text(response))

    if mode == "json":
        if response.status_code == 204:
            return response.with_body(None)
        try:
            return response.with_body(json.loads(_decode_text(response, errors="strict")))
        except ValueError as e:
            # UnicodeDecodeError is a ValueError too.
            raise ParseError(f"Invalid JSON received: {e}", response.content, e)

    raise ParseError(f"Unknown parse mode: {mode!r}", response.content)
