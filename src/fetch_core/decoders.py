"""
Content decoders for fetch_core.

Each decoder is an incremental transform from compressed to plain bytes,
keyed by its content-encoding token. SUPPORTED_ENCODINGS lists the tokens
whose codec is importable, in order of preference; it is what the client
advertises in accept-encoding.
"""

import zlib
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

try:
    import brotli
    HAS_BROTLI = True
except ImportError:
    HAS_BROTLI = False

try:
    import zstandard
    HAS_ZSTD = True
except ImportError:
    HAS_ZSTD = False

from .exceptions import DecodeError


class ContentDecoder(ABC):
    """Incremental decoder for one content-encoding."""

    @abstractmethod
    def decode(self, data: bytes) -> bytes:
        """Decode a chunk, returning whatever plain bytes are ready."""

    @abstractmethod
    def flush(self) -> bytes:
        """Return any remaining plain bytes once the input has ended."""


class GZipDecoder(ContentDecoder):
    def __init__(self) -> None:
        self._decompressor = zlib.decompressobj(zlib.MAX_WBITS | 16)

    def decode(self, data: bytes) -> bytes:
        try:
            return self._decompressor.decompress(data)
        except zlib.error as e:
            raise DecodeError(f"invalid gzip data: {e}", e)

    def flush(self) -> bytes:
        try:
            return self._decompressor.flush()
        except zlib.error as e:
            raise DecodeError(f"invalid gzip data: {e}", e)


class DeflateDecoder(ContentDecoder):
    """
    Decoder for "deflate", which servers send either zlib-wrapped (as the
    RFC says) or as a raw deflate stream.
    """

    def __init__(self) -> None:
        self._first_attempt = True
        self._decompressor = zlib.decompressobj()

    def decode(self, data: bytes) -> bytes:
        was_first_attempt = self._first_attempt
        self._first_attempt = False
        try:
            return self._decompressor.decompress(data)
        except zlib.error as e:
            if was_first_attempt:
                self._decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
                return self.decode(data)
            raise DecodeError(f"invalid deflate data: {e}", e)

    def flush(self) -> bytes:
        try:
            return self._decompressor.flush()
        except zlib.error as e:
            raise DecodeError(f"invalid deflate data: {e}", e)


class BrotliDecoder(ContentDecoder):
    def __init__(self) -> None:
        self._decompressor = brotli.Decompressor()
        self._seen_data = False

    def decode(self, data: bytes) -> bytes:
        if not data:
            return b""
        self._seen_data = True
        try:
            return self._decompressor.process(data)
        except brotli.error as e:
            raise DecodeError(f"invalid brotli data: {e}", e)

    def flush(self) -> bytes:
        if self._seen_data and not self._decompressor.is_finished():
            raise DecodeError("truncated brotli data")
        return b""


class ZStandardDecoder(ContentDecoder):
    def __init__(self) -> None:
        self._decompressor = zstandard.ZstdDecompressor().decompressobj()
        self._seen_data = False

    def decode(self, data: bytes) -> bytes:
        if not data:
            return b""
        self._seen_data = True
        try:
            output = [self._decompressor.decompress(data)]
            # Concatenated frames: start a new decompressor for the rest.
            while self._decompressor.eof and self._decompressor.unused_data:
                unused = self._decompressor.unused_data
                self._decompressor = zstandard.ZstdDecompressor().decompressobj()
                output.append(self._decompressor.decompress(unused))
        except zstandard.ZstdError as e:
            raise DecodeError(f"invalid zstd data: {e}", e)
        return b"".join(output)

    def flush(self) -> bytes:
        if not self._seen_data:
            return b""
        remaining = self._decompressor.flush()
        if not self._decompressor.eof:
            raise DecodeError("truncated zstd data")
        return bytes(remaining)


DecoderFactory = Callable[[], ContentDecoder]

# Ordered by preference.
DECODERS: Dict[str, DecoderFactory] = {}
if HAS_ZSTD:
    DECODERS["zstd"] = ZStandardDecoder
if HAS_BROTLI:
    DECODERS["br"] = BrotliDecoder
DECODERS["gzip"] = GZipDecoder
DECODERS["deflate"] = DeflateDecoder

SUPPORTED_ENCODINGS = tuple(DECODERS)
ACCEPT_ENCODING = ", ".join(SUPPORTED_ENCODINGS)


def get_decoder(content_encoding: Optional[str]) -> Optional[ContentDecoder]:
    """
    Build a decoder for a content-encoding header value.

    Returns None for absent, identity, stacked or unrecognized encodings,
    which are passed through untouched.
    """
    if not content_encoding:
        return None
    factory = DECODERS.get(content_encoding.strip().lower())
    return factory() if factory is not None else None
