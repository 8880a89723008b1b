import gzip
from collections.abc import Callable
from collections.abc import Iterator
from typing import Optional

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from giscus_proxy.app import create_app
from giscus_proxy.backends.memory import MemoryBackend
from giscus_proxy.config import ProxyConfig
from giscus_proxy.upstream import UpstreamClient

WIDGET_HTML = (
    "<html><body><p>Hello world</p>"
    "<footer>Comments – powered by <a>giscus</a></footer></body></html>"
)


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenStream(httpx.AsyncByteStream):
    """Body stream that fails part way through."""

    async def __aiter__(self):
        yield b"partial"
        raise httpx.ReadError("connection reset by peer")


class FakeUpstream:
    """Scripted upstream server keyed by path; records every request it sees."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Callable[[], httpx.Response]] = {}
        self.error: Optional[Callable[[httpx.Request], Exception]] = None

    def add(
        self,
        path: str,
        body: bytes = b"",
        status: int = 200,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.routes[path] = lambda: httpx.Response(
            status, headers=headers or {}, stream=httpx.ByteStream(body)
        )

    def add_gzip(
        self, path: str, body: bytes, headers: Optional[dict[str, str]] = None
    ) -> None:
        self.add(
            path,
            gzip.compress(body),
            headers={"Content-Encoding": "gzip", **(headers or {})},
        )

    def add_broken(self, path: str, headers: Optional[dict[str, str]] = None) -> None:
        self.routes[path] = lambda: httpx.Response(
            200, headers=headers or {}, stream=BrokenStream()
        )

    def fail_with(self, factory: Callable[[httpx.Request], Exception]) -> None:
        self.error = factory

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, stream=httpx.ByteStream(b"not found"))
        return route()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> FakeUpstream:
    upstream = FakeUpstream()
    upstream.add(
        "/en/widget",
        WIDGET_HTML.encode(),
        headers={"Content-Type": "text/html; charset=utf-8", "ETag": '"w1"'},
    )
    return upstream


@pytest.fixture
def backend(clock: FakeClock) -> MemoryBackend:
    return MemoryBackend(max_entries=16, clock=clock)


@pytest.fixture
def app(upstream: FakeUpstream, backend: MemoryBackend, clock: FakeClock) -> FastAPI:
    client = UpstreamClient(httpx.AsyncClient(transport=httpx.MockTransport(upstream)))
    return create_app(
        config=ProxyConfig(), client=client, backend=backend, clock=clock
    )


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
