"""Application factory wiring the proxy handlers into FastAPI."""

import time
from collections.abc import AsyncIterator
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from giscus_proxy.backends import BaseCacheBackend
from giscus_proxy.config import ProxyConfig
from giscus_proxy.proxy import GiscusProxy
from giscus_proxy.upstream import UpstreamClient


def create_app(
    config: Optional[ProxyConfig] = None,
    client: Optional[UpstreamClient] = None,
    backend: Optional[BaseCacheBackend] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build the proxy application.

    The generated docs and OpenAPI routes are disabled so that every path,
    apart from the widget paths, is forwarded upstream.
    """
    proxy = GiscusProxy(config=config, client=client, backend=backend, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await proxy.aclose()

    app = FastAPI(
        title="giscus-proxy",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    proxy.register(app)
    app.state.proxy = proxy
    return app


# Ready-made instance for `uvicorn giscus_proxy.app:app` and serverless hosts
app = create_app(ProxyConfig(cache_max_entries=256))
