"""
Custom exceptions for fetch_core.

Every failure a request can end in is one of the classes below. They all
derive from FetchError, carry the underlying exception (if any) in
``cause`` and prefix their message with the kind of failure.
"""

from typing import Optional


class FetchError(Exception):
    """Base exception for all fetch_core errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class InvalidRequest(FetchError):
    """Raised when the caller supplied a missing or malformed option."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Invalid request: {message}", cause)


class TransportError(FetchError):
    """Raised on DNS, connect, TLS or protocol level failures."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Transport error: {message}", cause)


class ProtocolNegotiationError(TransportError):
    """Raised when a TLS handshake did not select the expected protocol."""

    def __init__(self, message: str, negotiated: Optional[str] = None) -> None:
        super().__init__(message)
        self.negotiated = negotiated


class Timeout(FetchError):
    """Raised when no response arrived within the configured deadline."""

    def __init__(self, message: str, timeout: Optional[float] = None) -> None:
        if timeout is not None:
            message = f"{message} (timeout: {timeout}s)"
        super().__init__(f"Timeout error: {message}")
        self.timeout = timeout


class ServerAborted(FetchError):
    """Raised when the server closed the connection mid-response."""

    def __init__(self, message: str = "Server aborted request", cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Server aborted: {message}", cause)


class TooManyRedirects(FetchError):
    """Raised when a redirect chain is longer than max_redirects."""

    def __init__(self, max_redirects: int) -> None:
        super().__init__(
            f"Exceeded the maximum number of redirects ({max_redirects})"
        )
        self.max_redirects = max_redirects


class ResponseTooLarge(FetchError):
    """Raised when a buffered response body grows past max_buffer."""

    def __init__(self, size: int, max_buffer: int) -> None:
        super().__init__(
            f"Received a response which was longer than acceptable when "
            f"buffering ({size} bytes, limit {max_buffer} bytes)"
        )
        self.size = size
        self.max_buffer = max_buffer


class DecodeError(FetchError):
    """Raised when a compressed response body cannot be decompressed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Decode error: {message}", cause)


class ParseError(FetchError):
    """Raised when a response body cannot be parsed in the requested mode."""

    def __init__(self, message: str, body: bytes = b"", cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Parse error: {message}", cause)
        self.body = body
