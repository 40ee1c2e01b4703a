"""
Pytest configuration for fetch_core tests.

This file contains shared fixtures and configuration for all tests in
the project: canned HTTP/1.1 responses for the mock backend, and two
loopback servers (HTTP/1.1 and HTTP/2 with prior knowledge) for end to
end tests.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import h2.config
import h2.connection
import h2.events
import h2.exceptions
import pytest
import pytest_asyncio

from fetch_core import Client
from fetch_core.network import MockNetworkBackend


def http11_response(
    status: int = 200,
    headers: Optional[List[Tuple[str, str]]] = None,
    body: bytes = b"",
    reason: str = "OK",
    content_length: bool = True,
) -> bytes:
    """Serialize an HTTP/1.1 response for the mock backend."""
    headers = list(headers or [])
    if content_length and not any(name.lower() == "content-length" for name, _ in headers):
        headers.append(("Content-Length", str(len(body))))
    head = f"HTTP/1.1 {status} {reason}\r\n"
    head += "".join(f"{name}: {value}\r\n" for name, value in headers)
    return head.encode("latin-1") + b"\r\n" + body


@pytest.fixture
def make_response():
    """Factory for serialized HTTP/1.1 responses."""
    return http11_response


@pytest.fixture
def mock_backend():
    """Create a mock backend serving the given canned responses."""
    def _create(*responses: bytes, server_alpn: Optional[str] = "http/1.1", error=None):
        return MockNetworkBackend(list(responses), server_alpn=server_alpn, error=error)
    return _create


@pytest.fixture
def sample_stream_data():
    """Sample stream data for testing."""
    return [
        b"Hello",
        b", ",
        b"World",
        b"!",
    ]


# -- loopback servers --------------------------------------------------------

Body = Union[bytes, AsyncIterable[bytes]]
HandlerResult = Tuple[int, List[Tuple[str, str]], Body]


@dataclass
class ServerRequest:
    """A request as seen by a loopback server."""
    method: str
    path: str
    headers: Dict[str, str]
    body: bytes = b""


Handler = Callable[[ServerRequest], Awaitable[HandlerResult]]


@dataclass
class LoopbackServer:
    """Shared bookkeeping of the loopback servers."""
    routes: Dict[str, Handler] = field(default_factory=dict)
    requests: List[ServerRequest] = field(default_factory=list)
    connections: int = 0
    port: int = 0
    _server: Any = None
    _writers: List[asyncio.StreamWriter] = field(default_factory=list)

    def url(self, path: str = "/") -> str:
        return f"http://127.0.0.1:{self.port}{path}"

    def route(self, path: str):
        def decorator(handler: Handler) -> Handler:
            self.routes[path] = handler
            return handler
        return decorator

    async def dispatch(self, request: ServerRequest) -> HandlerResult:
        self.requests.append(request)
        handler = self.routes.get(request.path.split("?", 1)[0])
        if handler is None:
            return 404, [("content-type", "text/plain")], b"not found"
        return await handler(request)

    async def start(self, client_connected) -> None:
        async def on_connect(reader, writer):
            self.connections += 1
            self._writers.append(writer)
            try:
                await client_connected(reader, writer)
            except (ConnectionError, asyncio.IncompleteReadError):
                pass
            finally:
                writer.close()

        self._server = await asyncio.start_server(on_connect, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        self._server.close()
        for writer in self._writers:
            writer.close()
        await self._server.wait_closed()


class HTTP11Server(LoopbackServer):
    """
    Minimal keep-alive HTTP/1.1 server.

    Handlers return (status, headers, body). A bytes body is sent with
    content-length unless the handler set ``connection: close``; an async
    iterable body is sent chunked.
    """

    async def start(self) -> None:
        await super().start(self._serve)

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        while True:
            try:
                head = await reader.readuntil(b"\r\n\r\n")
            except asyncio.IncompleteReadError:
                return

            lines = head.decode("latin-1").split("\r\n")
            method, target, _ = lines[0].split(" ", 2)
            headers = {}
            for line in lines[1:]:
                if line:
                    name, value = line.split(":", 1)
                    headers[name.strip().lower()] = value.strip()
            body = await reader.readexactly(int(headers.get("content-length", "0")))

            status, response_headers, response_body = await self.dispatch(
                ServerRequest(method, target, headers, body)
            )
            close = await self._respond(writer, status, response_headers, response_body)
            if close:
                return

    async def _respond(self, writer, status, headers, body) -> bool:
        names = {name.lower() for name, _ in headers}
        close = any(name.lower() == "connection" and value.lower() == "close" for name, value in headers)
        headers = list(headers)

        if isinstance(body, bytes):
            if not close and "content-length" not in names:
                headers.append(("content-length", str(len(body))))
        else:
            headers.append(("transfer-encoding", "chunked"))

        head = f"HTTP/1.1 {status} Status\r\n" + "".join(f"{n}: {v}\r\n" for n, v in headers)
        writer.write(head.encode("latin-1") + b"\r\n")

        if isinstance(body, bytes):
            writer.write(body)
            await writer.drain()
        else:
            async for chunk in body:
                writer.write(b"%x\r\n%s\r\n" % (len(chunk), chunk))
                await writer.drain()
            writer.write(b"0\r\n\r\n")
            await writer.drain()
        return close


class HTTP2Server(LoopbackServer):
    """
    HTTP/2 server with prior knowledge (no TLS), built on h2.

    Handler bodies must be bytes and fit the initial flow-control window.
    """

    goaway_after_response: bool = False

    async def start(self) -> None:
        await super().start(self._serve)

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        config = h2.config.H2Configuration(client_side=False, header_encoding="utf-8")
        conn = h2.connection.H2Connection(config=config)
        conn.initiate_connection()
        writer.write(conn.data_to_send())
        await writer.drain()

        pending: Dict[int, ServerRequest] = {}
        while True:
            data = await reader.read(65535)
            if not data:
                return

            for event in conn.receive_data(data):
                if isinstance(event, h2.events.RequestReceived):
                    headers = dict(event.headers)
                    pending[event.stream_id] = ServerRequest(
                        method=headers[":method"],
                        path=headers[":path"],
                        headers={k: v for k, v in headers.items()},
                    )
                elif isinstance(event, h2.events.DataReceived):
                    pending[event.stream_id].body += event.data
                    conn.acknowledge_received_data(event.flow_controlled_length, event.stream_id)
                elif isinstance(event, h2.events.StreamEnded):
                    request = pending.pop(event.stream_id)
                    status, headers, body = await self.dispatch(request)
                    response_headers = [(":status", str(status))] + [
                        (name.lower(), value) for name, value in headers
                    ]
                    try:
                        conn.send_headers(event.stream_id, response_headers, end_stream=not body)
                        if body:
                            conn.send_data(event.stream_id, body, end_stream=True)
                    except h2.exceptions.StreamClosedError:
                        # The client reset the stream while the handler ran.
                        continue
                    if self.goaway_after_response:
                        conn.close_connection(last_stream_id=event.stream_id)

            writer.write(conn.data_to_send())
            await writer.drain()


@pytest_asyncio.fixture
async def http11_server():
    """A running loopback HTTP/1.1 server."""
    server = HTTP11Server()
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def http2_server():
    """A running loopback HTTP/2 (prior knowledge) server."""
    server = HTTP2Server()
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def client():
    """A fresh client, closed after the test."""
    async with Client() as client:
        yield client


@pytest_asyncio.fixture
async def start_http11_server():
    """Start extra HTTP/1.1 servers (a second origin); stopped after the test."""
    servers = []

    async def _start() -> HTTP11Server:
        server = HTTP11Server()
        await server.start()
        servers.append(server)
        return server

    yield _start
    for server in servers:
        await server.stop()
