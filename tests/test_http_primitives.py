"""
Unit tests for HTTP primitives.

Tests the URL, Origin, header helpers, RequestDescriptor and response
classes to ensure they work correctly and maintain immutability.
"""

import dataclasses

import pytest

from fetch_core.http_primitives import (
    URL,
    BufferedResponse,
    Origin,
    RequestDescriptor,
    RequestOptions,
    StreamedResponse,
    get_all_headers,
    get_header,
    remove_headers,
    set_header,
)
from fetch_core.streams import BytesStream


class TestURL:
    """Test URL parsing."""

    def test_parse_http(self) -> None:
        url = URL.parse("http://example.com/path?q=1")
        assert url.scheme == "http"
        assert url.host == "example.com"
        assert url.port == 80
        assert url.target == "/path?q=1"
        assert str(url) == "http://example.com/path?q=1"

    def test_parse_https_with_port(self) -> None:
        url = URL.parse("https://Example.com:8443")
        assert url.host == "example.com"
        assert url.port == 8443
        assert url.target == "/"
        assert url.authority == "example.com:8443"

    def test_parse_ipv6(self) -> None:
        url = URL.parse("http://[::1]:8080/")
        assert url.host == "::1"
        assert url.authority == "[::1]:8080"

    def test_bad_protocol(self) -> None:
        with pytest.raises(ValueError, match="Bad URL protocol: ftp:"):
            URL.parse("ftp://example.com/")

    def test_not_absolute(self) -> None:
        with pytest.raises(ValueError):
            URL.parse("/relative/path")

    def test_origin(self) -> None:
        origin = URL.parse("https://example.com/a").origin
        assert origin == Origin("https", "example.com", 443)
        assert str(origin) == "https://example.com"
        assert str(Origin("http", "localhost", 8080)) == "http://localhost:8080"

    def test_origin_distinguishes_port(self) -> None:
        assert URL.parse("http://a.com:81/").origin != URL.parse("http://a.com/").origin


class TestHeaderHelpers:
    """Test case-insensitive header helpers."""

    headers = (("content-type", "text/plain"), ("set-cookie", "a=1"), ("set-cookie", "b=2"))

    def test_get_header(self) -> None:
        assert get_header(self.headers, "Content-Type") == "text/plain"
        assert get_header(self.headers, "missing") is None

    def test_get_all_headers(self) -> None:
        assert get_all_headers(self.headers, "Set-Cookie") == ["a=1", "b=2"]

    def test_set_header_replaces(self) -> None:
        headers = set_header(self.headers, "Content-Type", "application/json")
        assert get_all_headers(headers, "content-type") == ["application/json"]

    def test_remove_headers(self) -> None:
        headers = remove_headers(self.headers, ["SET-COOKIE"])
        assert headers == (("content-type", "text/plain"),)


class TestRequestDescriptor:
    """Test RequestDescriptor immutability and derivation."""

    def make_request(self) -> RequestDescriptor:
        return RequestDescriptor(
            method="POST",
            url=URL.parse("https://example.com/a"),
            headers=(("authorization", "secret"),),
            body=b"payload",
        )

    def test_immutable(self) -> None:
        request = self.make_request()
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.method = "GET"

    def test_with_url_returns_new_descriptor(self) -> None:
        request = self.make_request()
        moved = request.with_url("https://other.com/b")

        assert moved.url.host == "other.com"
        assert moved.body == b"payload"
        assert request.url.host == "example.com"

    def test_with_headers(self) -> None:
        request = self.make_request()
        stripped = request.with_headers(())
        assert stripped.get_header("authorization") is None
        assert request.get_header("authorization") == "secret"

    def test_origin(self) -> None:
        assert self.make_request().origin == Origin("https", "example.com", 443)


class TestRequestOptions:
    """Test per-request options."""

    def test_defaults(self) -> None:
        options = RequestOptions()
        assert options.max_redirects == 20
        assert options.max_buffer == 50_000_000
        assert not options.follow_redirects
        assert options.http2

    def test_http2_overrides_apply_to_h2_only(self) -> None:
        options = RequestOptions(
            connection={"connect_timeout": 5},
            http2_options={"verify": False},
        )
        assert dict(options.connection_overrides("h2")) == {"connect_timeout": 5, "verify": False}
        assert dict(options.connection_overrides("http/1.1")) == {"connect_timeout": 5}


class TestResponses:
    """Test BufferedResponse and StreamedResponse."""

    def make_response(self, body, content_type="application/json") -> BufferedResponse:
        return BufferedResponse(
            status_code=200,
            headers=[("content-type", content_type)],
            transport="https",
            url="https://example.com/",
            request=RequestDescriptor(method="GET", url=URL.parse("https://example.com/")),
            body=body,
        )

    def test_text_and_json(self) -> None:
        response = self.make_response(b'{"hi": "hey"}')
        assert response.text() == '{"hi": "hey"}'
        assert response.json() == {"hi": "hey"}

    def test_text_and_json_after_parsing(self) -> None:
        response = self.make_response(b'{"hi": "hey"}')
        as_text = response.with_body(response.text())

        assert as_text.content == b'{"hi": "hey"}'
        assert as_text.json() == {"hi": "hey"}
        assert as_text.with_body(as_text.json()).text() == '{"hi": "hey"}'

    def test_content_defaults_to_bytes_body(self) -> None:
        assert self.make_response(b"raw").content == b"raw"
        assert self.make_response({"parsed": True}).content == b""

    def test_with_body(self) -> None:
        response = self.make_response(b"raw")
        parsed = response.with_body("parsed")
        assert parsed.body == "parsed"
        assert response.body == b"raw"
        assert parsed.get_header("Content-Type") == "application/json"

    @pytest.mark.asyncio
    async def test_streamed_response(self, sample_stream_data) -> None:
        stream = BytesStream(sample_stream_data)
        response = StreamedResponse(
            status_code=200,
            headers=[],
            transport="http",
            url="http://example.com/",
            request=RequestDescriptor(method="GET", url=URL.parse("http://example.com/")),
            stream=stream,
        )

        async with response:
            chunks = [chunk async for chunk in response]

        assert b"".join(chunks) == b"Hello, World!"
        assert stream.closed
