#!/usr/bin/env python3
"""
End-to-end tests: a real DevServer on a local port, plain HTTP clients and
WebSocket push clients talking to it.
"""

import asyncio
import socket

import pytest
import pytest_asyncio
from websockets.asyncio.client import connect

from watch_n_serve.server import DevServer, ServerConfig
from watch_n_serve.server.injection import build_reload_script


HOST = "127.0.0.1"


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((HOST, 0))
        return sock.getsockname()[1]


def request_bytes(port: int, path: str) -> bytes:
    return f"GET {path} HTTP/1.1\r\nHost: {HOST}:{port}\r\n\r\n".encode("ascii")


async def read_response(reader: asyncio.StreamReader):
    """Read one response off a keep-alive connection and return (status, body)."""
    head = await asyncio.wait_for(reader.readuntil(b"\r\n\r\n"), timeout=5.0)
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ", 2)[1])

    length = 0
    for line in lines[1:]:
        name, _, value = line.partition(":")
        if name.strip().lower() == "content-length":
            length = int(value.strip())

    body = await asyncio.wait_for(reader.readexactly(length), timeout=5.0)
    return status, body


async def http_get(port: int, path: str):
    """Send one GET on a fresh connection and return (status, body)."""
    reader, writer = await asyncio.open_connection(HOST, port)
    try:
        writer.write(request_bytes(port, path))
        await writer.drain()
        return await read_response(reader)
    finally:
        writer.close()


async def wait_for(predicate, timeout: float = 5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.02)
    return True


@pytest.fixture
def site(tmp_path):
    (tmp_path / "index.html").write_text("<html><body>hi</body></html>")
    (tmp_path / "app.js").write_text("console.log('hi');")
    return tmp_path


@pytest_asyncio.fixture
async def server(site):
    server = DevServer(ServerConfig(root=site, host=HOST, port=free_port(), minimum_delay=0.05))
    await server.start()
    yield server
    await server.stop()


@pytest.mark.asyncio
async def test_index_served_with_reload_script(server):
    port = server.bound_port
    status, body = await http_get(port, "/")

    script = build_reload_script(HOST, port)
    assert status == 200
    assert body == f"<html><body>hi{script}</body></html>".encode("utf-8")


@pytest.mark.asyncio
async def test_static_file_served_unchanged(server, site):
    status, body = await http_get(server.bound_port, "/app.js")

    assert status == 200
    assert body == (site / "app.js").read_bytes()


@pytest.mark.asyncio
async def test_missing_file_is_404_and_server_keeps_serving(server):
    status, body = await http_get(server.bound_port, "/missing.html")
    assert status == 404
    assert body == b""

    status, _ = await http_get(server.bound_port, "/app.js")
    assert status == 200


@pytest.mark.asyncio
async def test_concurrent_requests(server):
    results = await asyncio.gather(*(http_get(server.bound_port, "/app.js") for _ in range(10)))
    assert [status for status, _ in results] == [200] * 10


@pytest.mark.asyncio
async def test_pipelined_requests_answered_in_order(server, site):
    port = server.bound_port
    reader, writer = await asyncio.open_connection(HOST, port)
    try:
        # Two requests in one write, before any response is read
        writer.write(request_bytes(port, "/app.js") + request_bytes(port, "/missing.css"))
        await writer.drain()

        assert await read_response(reader) == (200, (site / "app.js").read_bytes())
        assert await read_response(reader) == (404, b"")

        # Connection is still usable afterwards
        writer.write(request_bytes(port, "/"))
        await writer.drain()
        status, body = await read_response(reader)
        assert status == 200
        assert build_reload_script(HOST, port).encode("utf-8") in body
    finally:
        writer.close()


@pytest.mark.asyncio
async def test_push_client_receives_update(server, site):
    uri = f"ws://{HOST}:{server.bound_port}/.watch_n_serve/events"
    async with connect(uri) as websocket:
        assert await wait_for(lambda: server.get_client_count() == 1)

        (site / "app.js").write_text("console.log('changed');")

        message = await asyncio.wait_for(websocket.recv(), timeout=5.0)
        assert message == "updated"


@pytest.mark.asyncio
async def test_serving_a_page_does_not_trigger_reload(server):
    uri = f"ws://{HOST}:{server.bound_port}/.watch_n_serve/events"
    async with connect(uri) as websocket:
        assert await wait_for(lambda: server.get_client_count() == 1)

        status, _ = await http_get(server.bound_port, "/")
        assert status == 200

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(websocket.recv(), timeout=0.5)


@pytest.mark.asyncio
async def test_every_push_client_receives_update(server, site):
    uri = f"ws://{HOST}:{server.bound_port}/.watch_n_serve/events"
    async with connect(uri) as first, connect(uri) as second:
        assert await wait_for(lambda: server.get_client_count() == 2)

        (site / "new.css").write_text("body {}")

        messages = await asyncio.wait_for(asyncio.gather(first.recv(), second.recv()), timeout=5.0)
        assert messages == ["updated", "updated"]


@pytest.mark.asyncio
async def test_closed_push_client_is_removed(server):
    uri = f"ws://{HOST}:{server.bound_port}/.watch_n_serve/events"
    async with connect(uri) as staying:
        async with connect(uri):
            assert await wait_for(lambda: server.get_client_count() == 2)

        assert await wait_for(lambda: server.get_client_count() == 1)

        await server._on_changed()
        message = await asyncio.wait_for(staying.recv(), timeout=5.0)
        assert message == "updated"

    assert await wait_for(lambda: server.get_client_count() == 0)


@pytest.mark.asyncio
async def test_missing_root_fails_without_holding_the_port(tmp_path):
    port = free_port()
    server = DevServer(ServerConfig(root=tmp_path / "missing", host=HOST, port=port))

    with pytest.raises(FileNotFoundError):
        await server.serve()

    assert not server.is_running()
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((HOST, port))


@pytest.mark.asyncio
async def test_busy_port_stops_the_watcher(site):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind((HOST, 0))
        busy.listen()
        port = busy.getsockname()[1]

        server = DevServer(ServerConfig(root=site, host=HOST, port=port))
        with pytest.raises(OSError):
            await server.start()

    assert not server.is_running()
    assert not server.watcher.is_active()
    assert server.watcher.observer is None
