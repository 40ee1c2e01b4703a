"""
Tests for the response pipeline and body parsers.
"""

import gzip
import json

import pytest

from fetch_core.builder import build_request
from fetch_core.config import RequestConfig
from fetch_core.exceptions import DecodeError, ParseError, ResponseTooLarge
from fetch_core.http_primitives import BufferedResponse, RawResponse, StreamedResponse
from fetch_core.parsers import charset_of, parse_body
from fetch_core.pipeline import ResponsePipeline
from fetch_core.streams import BytesStream


def make_raw(chunks, headers=(), status=200):
    return RawResponse(status, list(headers), BytesStream(chunks), "http", "http://example.com/")


def make_request(**options):
    return build_request(RequestConfig.from_options("http://example.com/", **options))


def buffered(body, headers=(), status=200):
    return BufferedResponse(status, list(headers), "http", "http://example.com/", make_request(), body)


class TestResponsePipeline:
    """Test decoding, streaming and buffering."""

    @pytest.mark.asyncio
    async def test_identity_body(self, sample_stream_data):
        response = await ResponsePipeline().process(make_raw(sample_stream_data), make_request())

        assert isinstance(response, BufferedResponse)
        assert response.body == b"Hello, World!"
        assert response.status_code == 200
        assert response.transport == "http"

    @pytest.mark.asyncio
    async def test_empty_body(self):
        response = await ResponsePipeline().process(make_raw([]), make_request())
        assert response.body == b""

    @pytest.mark.asyncio
    async def test_content_survives_parsing(self):
        raw = make_raw([gzip.compress(b'{"hi": "hey"}')], [("content-encoding", "gzip")])
        response = await ResponsePipeline().process(raw, make_request())

        parsed = parse_body(response, "json")
        assert parsed.body == {"hi": "hey"}
        assert parsed.content == b'{"hi": "hey"}'
        assert parsed.text() == '{"hi": "hey"}'

    @pytest.mark.asyncio
    async def test_gzip_decoded(self):
        data = gzip.compress(b"compressed payload")
        raw = make_raw([data[:5], data[5:]], [("content-encoding", "gzip")])

        response = await ResponsePipeline().process(raw, make_request())
        assert response.body == b"compressed payload"

    @pytest.mark.asyncio
    async def test_decoded_even_without_compression_flag(self):
        raw = make_raw([gzip.compress(b"abc")], [("content-encoding", "gzip")])
        response = await ResponsePipeline().process(raw, make_request(compression=False))
        assert response.body == b"abc"

    @pytest.mark.asyncio
    async def test_unknown_encoding_passes_through(self):
        raw = make_raw([b"opaque"], [("content-encoding", "x-custom")])
        response = await ResponsePipeline().process(raw, make_request())
        assert response.body == b"opaque"

    @pytest.mark.asyncio
    async def test_decode_error(self):
        raw = make_raw([b"not gzip"], [("content-encoding", "gzip")])
        with pytest.raises(DecodeError):
            await ResponsePipeline().process(raw, make_request())
        assert raw.stream.closed

    @pytest.mark.asyncio
    async def test_content_length_over_limit_reads_nothing(self):
        raw = make_raw([b"x" * 10], [("content-length", "2000")])

        with pytest.raises(ResponseTooLarge) as exc_info:
            await ResponsePipeline().process(raw, make_request(max_buffer=1000))

        assert exc_info.value.size == 2000
        assert raw.stream.closed
        assert raw.stream.bytes_read == 0

    @pytest.mark.asyncio
    async def test_running_total_over_limit_stops_read(self):
        raw = make_raw([b"x" * 400] * 10)

        with pytest.raises(ResponseTooLarge):
            await ResponsePipeline().process(raw, make_request(max_buffer=1000))

        assert raw.stream.closed
        assert raw.stream.bytes_read == 1200

    @pytest.mark.asyncio
    async def test_unlimited_buffer(self):
        raw = make_raw([b"x" * 400] * 10, [("content-length", "4000")])
        response = await ResponsePipeline().process(raw, make_request(max_buffer=None))
        assert len(response.body) == 4000

    @pytest.mark.asyncio
    async def test_stream_mode(self):
        raw = make_raw([b"x" * 400] * 10, [("content-length", "4000")])
        response = await ResponsePipeline().process(raw, make_request(stream=True, max_buffer=1000))

        assert isinstance(response, StreamedResponse)
        assert raw.stream.bytes_read == 0
        assert len(await response.aread()) == 4000

    @pytest.mark.asyncio
    async def test_stream_mode_decodes(self):
        raw = make_raw([gzip.compress(b"streamed")], [("content-encoding", "gzip")])
        response = await ResponsePipeline().process(raw, make_request(stream=True))
        assert await response.aread() == b"streamed"


class TestParseBody:
    """Test body parse modes."""

    def test_none(self):
        response = buffered(b"raw")
        assert parse_body(response, None).body == b"raw"
        assert parse_body(response, "none").body == b"raw"

    def test_string(self):
        response = buffered("héllo".encode("utf-8"))
        assert parse_body(response, "string").body == "héllo"

    def test_string_uses_charset(self):
        response = buffered("héllo".encode("latin-1"), [("content-type", "text/plain; charset=ISO-8859-1")])
        assert parse_body(response, "string").body == "héllo"

    def test_string_replaces_undecodable(self):
        assert parse_body(buffered(b"ok\xff"), "string").body == "ok\ufffd"

    def test_json(self):
        response = parse_body(buffered(json.dumps({"hi": "hey"}).encode()), "json")
        assert response.body["hi"] == "hey"

    def test_json_204_is_none(self):
        assert parse_body(buffered(b"", status=204), "json").body is None

    def test_json_malformed(self):
        with pytest.raises(ParseError) as exc_info:
            parse_body(buffered(b"{not json"), "json")
        assert exc_info.value.body == b"{not json"
        assert isinstance(exc_info.value.cause, ValueError)

    def test_json_invalid_utf8(self):
        with pytest.raises(ParseError) as exc_info:
            parse_body(buffered(b'{"name": "\xff"}'), "json")
        assert exc_info.value.body == b'{"name": "\xff"}'
        assert isinstance(exc_info.value.cause, UnicodeDecodeError)

    def test_parse_again_in_another_mode(self):
        as_text = parse_body(buffered(b'{"hi": "hey"}'), "string")
        assert parse_body(as_text, "json").body == {"hi": "hey"}
        assert parse_body(as_text, "none").body == b'{"hi": "hey"}'

    def test_callable(self):
        assert parse_body(buffered(b"abc"), lambda body: body.upper()).body == b"ABC"

    @pytest.mark.parametrize(
        "content_type, expected",
        [
            ("", "utf-8"),
            ("text/html", "utf-8"),
            ("text/html; charset=UTF-16", "utf-16"),
            ('text/html; charset="iso-8859-1"', "iso-8859-1"),
        ],
    )
    def test_charset_of(self, content_type, expected):
        assert charset_of(content_type) == expected
