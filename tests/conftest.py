"""Shared fixtures: a loopback aiohttp server with httpbin-like endpoints."""

import asyncio
import collections
import socket
import threading
import time
from collections.abc import Iterator
from typing import Callable, Optional

import pytest
from aiohttp import BasicAuth, web

SAMPLE_XML = """<?xml version='1.0' encoding='us-ascii'?>

<!--  A SAMPLE set of slides  -->

<slideshow
    title="Sample Slide Show"
    date="Date of publication"
    author="Yours Truly"
    >

    <!-- TITLE SLIDE -->
    <slide type="all">
      <title>Wake up to WonderWidgets!</title>
    </slide>

    <!-- OVERVIEW -->
    <slide type="all">
        <title>Overview</title>
        <item>Why <em>WonderWidgets</em> are great</item>
        <item/>
        <item>Who <em>buys</em> WonderWidgets</item>
    </slide>

</slideshow>
"""

IMAGE_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 512

HITS = web.AppKey("hits", collections.Counter)


@web.middleware
async def count_hits(request: web.Request, handler):
    request.app[HITS][request.path] += 1
    return await handler(request)


async def xml(request: web.Request) -> web.Response:
    return web.Response(text=SAMPLE_XML, content_type="application/xml")


async def get(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "args": dict(request.query),
            "headers": dict(request.headers),
            "url": str(request.url),
        }
    )


async def post(request: web.Request) -> web.Response:
    data = await request.read()
    form = await request.post()
    return web.json_response(
        {
            "method": request.method,
            "form": {k: str(v) for k, v in form.items()},
            "data": data.decode("utf-8"),
            "headers": dict(request.headers),
        }
    )


async def redirect_to(request: web.Request) -> web.Response:
    status = int(request.query.get("status_code", "302"))
    return web.Response(status=status, headers={"Location": request.query["url"]})


async def redirect_n(request: web.Request) -> web.Response:
    n = int(request.match_info["n"])
    location = f"/redirect/{n - 1}" if n > 1 else "/get"
    return web.Response(status=302, headers={"Location": location})


async def basic_auth(request: web.Request) -> web.Response:
    user = request.match_info["user"]
    passwd = request.match_info["passwd"]
    auth = request.headers.get("Authorization")
    if auth:
        try:
            credentials = BasicAuth.decode(auth)
        except ValueError:
            credentials = None
        if credentials is not None and (credentials.login, credentials.password) == (user, passwd):
            return web.json_response({"authenticated": True, "user": user})
    return web.Response(status=401, headers={"WWW-Authenticate": 'Basic realm="Fake Realm"'})


async def image(request: web.Request) -> web.Response:
    return web.Response(body=IMAGE_BYTES, content_type=f"image/{request.match_info['kind']}")


async def status(request: web.Request) -> web.Response:
    return web.Response(status=int(request.match_info["code"]))


async def delay(request: web.Request) -> web.Response:
    await asyncio.sleep(float(request.match_info["seconds"]))
    return web.json_response({"delayed": True})


async def stream(request: web.Request) -> web.StreamResponse:
    n = int(request.match_info["n"])
    response = web.StreamResponse(headers={"Content-Type": "text/plain; charset=utf-8"})
    response.enable_chunked_encoding()
    await response.prepare(request)
    for i in range(n):
        await response.write(f"line {i}\n".encode())
        await asyncio.sleep(0)
    await response.write_eof()
    return response


async def headers(request: web.Request) -> web.Response:
    return web.json_response({"headers": dict(request.headers)})


def create_app() -> web.Application:
    app = web.Application(middlewares=[count_hits])
    app[HITS] = collections.Counter()
    app.router.add_get("/xml", xml)
    app.router.add_get("/get", get)
    app.router.add_route("*", "/post", post)
    app.router.add_route("*", "/redirect-to", redirect_to)
    app.router.add_get("/redirect/{n}", redirect_n)
    app.router.add_get("/basic-auth/{user}/{passwd}", basic_auth)
    app.router.add_get("/image/{kind}", image)
    app.router.add_route("*", "/status/{code}", status)
    app.router.add_get("/delay/{seconds}", delay)
    app.router.add_get("/stream/{n}", stream)
    app.router.add_get("/headers", headers)
    return app


class LoopbackServer:
    """Runs the test application on 127.0.0.1 in a background event loop thread."""

    def __init__(self) -> None:
        self.app = create_app()
        self.sample_xml = SAMPLE_XML
        self.image_bytes = IMAGE_BYTES
        self._loop = asyncio.new_event_loop()
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self.port = self._sock.getsockname()[1]
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    @property
    def hits(self) -> collections.Counter:
        return self.app[HITS]

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="loopback-server", daemon=True)
        self._thread.start()
        if not self._ready.wait(10):
            raise RuntimeError("Loopback server did not start")

    def stop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread is not None:
            self._thread.join(10)

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        runner = web.AppRunner(self.app, shutdown_timeout=1.0)
        self._loop.run_until_complete(runner.setup())
        site = web.SockSite(runner, self._sock)
        self._loop.run_until_complete(site.start())
        self._ready.set()
        try:
            self._loop.run_forever()
        finally:
            self._loop.run_until_complete(runner.cleanup())
            self._loop.close()


@pytest.fixture(scope="session")
def server() -> Iterator[LoopbackServer]:
    """Loopback httpbin-like server shared by the whole session."""
    loopback = LoopbackServer()
    loopback.start()
    yield loopback
    loopback.stop()


class RawServer:
    """Accepts one connection, reads the request head and replies with fixed bytes."""

    def __init__(self, payload: bytes, linger: float = 0.0) -> None:
        self.payload = payload
        self.linger = linger
        self.received = b""
        self._sock = socket.socket()
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self.port = self._sock.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, name="raw-server", daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        conn, _ = self._sock.accept()
        with conn:
            while b"\r\n\r\n" not in self.received:
                chunk = conn.recv(4096)
                if not chunk:
                    break
                self.received += chunk
            conn.sendall(self.payload)
            if self.linger:
                time.sleep(self.linger)
        self._sock.close()

    def url(self, path: str = "/") -> str:
        return f"http://127.0.0.1:{self.port}{path}"

    def join(self) -> None:
        self._thread.join(5)


@pytest.fixture
def raw_server() -> Iterator[Callable[..., RawServer]]:
    """Factory for one-shot servers replying with fixed bytes."""
    servers: list[RawServer] = []

    def factory(payload: bytes, linger: float = 0.0) -> RawServer:
        raw = RawServer(payload, linger)
        servers.append(raw)
        return raw

    yield factory
    for raw in servers:
        raw.join()


@pytest.fixture
def unused_port() -> int:
    """A local port with nothing listening on it."""
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
