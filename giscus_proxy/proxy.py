"""Request handlers that proxy the giscus widget and its sibling paths."""

import time
from collections.abc import AsyncIterator
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from logging import getLogger
from types import MappingProxyType
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import FastAPI
from fastapi import Request
from fastapi import Response
from fastapi.responses import PlainTextResponse
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.status import HTTP_200_OK
from starlette.status import HTTP_204_NO_CONTENT
from starlette.status import HTTP_400_BAD_REQUEST
from starlette.status import HTTP_405_METHOD_NOT_ALLOWED
from starlette.status import HTTP_502_BAD_GATEWAY

from giscus_proxy.backends import BaseCacheBackend
from giscus_proxy.backends import MemoryBackend
from giscus_proxy.config import ProxyConfig
from giscus_proxy.exceptions import ContentDecodingError
from giscus_proxy.exceptions import EncodingHeaderError
from giscus_proxy.exceptions import ReplacementRuleError
from giscus_proxy.exceptions import UnsupportedEncodingError
from giscus_proxy.exceptions import UpstreamError
from giscus_proxy.helpers import LOG_FORMAT
from giscus_proxy.helpers import NO_CACHE_STATE
from giscus_proxy.helpers import cache_key
from giscus_proxy.helpers import copy_headers
from giscus_proxy.helpers import cors_headers
from giscus_proxy.helpers import decompress
from giscus_proxy.helpers import format_duration
from giscus_proxy.helpers import is_identity_encoding
from giscus_proxy.helpers import parse_max_age
from giscus_proxy.helpers import request_uri
from giscus_proxy.replacements import parse_replacement_rules
from giscus_proxy.replacements import transform_widget_body
from giscus_proxy.types import CacheEntry
from giscus_proxy.upstream import UpstreamClient

logger = getLogger(__name__)

READABLE_METHODS = ("GET", "HEAD")
# Every method reaches the handlers, which answer OPTIONS and reject the rest
ROUTED_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]
WIDGET_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class CacheState:
    HIT = "HIT"
    MISS = "MISS"
    MISS_CACHED = "MISS:cached"
    BYPASS = "BYPASS"


@dataclass
class Exchange:
    """Per-request bookkeeping for the access log line."""

    kind: str
    method: str
    path: str
    cache_state: str = NO_CACHE_STATE
    target: str = ""
    status: int = HTTP_200_OK
    written: int = 0
    started: float = field(default_factory=time.perf_counter)


async def read_body(response: httpx.Response) -> bytes:
    """Read the raw, still-encoded body of a streamed response and close it."""
    try:
        return b"".join([chunk async for chunk in response.aiter_raw()])
    finally:
        await response.aclose()


class GiscusProxy:
    """Coordinates the widget and passthrough handlers.

    Args:
        config: Request-handling settings
        client: Upstream client, built from the config when omitted
        backend: Response cache for the passthrough handler
        clock: Source of epoch seconds used for cache expiry
    """

    def __init__(
        self,
        config: Optional[ProxyConfig] = None,
        client: Optional[UpstreamClient] = None,
        backend: Optional[BaseCacheBackend] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or ProxyConfig()
        self.client = client or UpstreamClient(timeout=self.config.upstream_timeout)
        self.clock = clock
        if backend is None:
            backend = MemoryBackend(
                max_entries=self.config.cache_max_entries, clock=clock
            )
        self.backend = backend

    def register(self, app: FastAPI) -> None:
        """Attach the handlers; widget paths must be matched before the catch-all."""
        for path in self.config.widget_paths:
            app.add_route(
                path,
                self.handle_widget,
                methods=ROUTED_METHODS,
                include_in_schema=False,
            )
        app.add_route(
            "/{path:path}",
            self.handle_passthrough,
            methods=ROUTED_METHODS,
            include_in_schema=False,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def widget_target(self, request: Request) -> str:
        """Upstream widget URL carrying every query parameter except ``rep``."""
        params = [
            (key, value)
            for key, value in request.query_params.multi_items()
            if key != "rep"
        ]
        params.sort(key=lambda item: item[0])
        target = self.config.upstream_origin + self.config.widget_source_path
        if params:
            target += "?" + urlencode(params)
        return target

    async def handle_widget(self, request: Request) -> Response:  # noqa: PLR0911
        exchange = self._start("widget", request)

        if request.method == "OPTIONS":
            return self._finish(exchange, self._preflight())
        if request.method not in READABLE_METHODS:
            return self._finish(exchange, self._method_not_allowed())

        try:
            rules = parse_replacement_rules(request.query_params.getlist("rep"))
        except ReplacementRuleError as exc:
            return self._finish(exchange, self._error(str(exc), HTTP_400_BAD_REQUEST))

        exchange.target = self.widget_target(request)
        try:
            upstream = await self.client.fetch(
                exchange.target,
                {
                    "Accept-Encoding": "identity",
                    "Accept": WIDGET_ACCEPT,
                    "User-Agent": self.config.user_agent,
                },
            )
        except UpstreamError as exc:
            return self._finish(exchange, self._upstream_error(exc))

        headers = cors_headers()
        copy_headers(headers, upstream.headers, ("Content-Type",))
        status = upstream.status_code

        try:
            raw = await read_body(upstream)
        except httpx.HTTPError as exc:
            return self._finish(exchange, self._read_failed(exc, status, headers))

        try:
            body = transform_widget_body(
                decompress(raw, upstream.headers.get("Content-Encoding")), rules
            )
        except (UnsupportedEncodingError, EncodingHeaderError) as exc:
            logger.warning("Forwarding widget body untransformed: %s", exc)
            body = raw
        except ContentDecodingError as exc:
            return self._finish(exchange, self._read_failed(exc, status, headers))

        return self._finish(
            exchange, Response(content=body, status_code=status, headers=headers)
        )

    async def handle_passthrough(self, request: Request) -> Response:  # noqa: PLR0911
        exchange = self._start("pass", request)
        exchange.cache_state = CacheState.BYPASS

        if request.method == "OPTIONS":
            return self._finish(exchange, self._preflight())
        if request.method not in READABLE_METHODS:
            return self._finish(exchange, self._method_not_allowed())

        exchange.target = self.config.upstream_origin + exchange.path
        accept_encoding = request.headers.get("accept-encoding", "")
        key = cache_key(
            request.method, request.url.path, request.url.query, accept_encoding
        )

        entry = await self.backend.get(key)
        if entry is not None:
            exchange.cache_state = CacheState.HIT
            headers = cors_headers()
            copy_headers(headers, entry.headers, self.config.cache_headers)
            return self._finish(
                exchange,
                Response(content=entry.body, status_code=entry.status, headers=headers),
            )

        try:
            upstream = await self.client.fetch(
                exchange.target,
                {
                    # Absent header: ask for identity rather than httpx's default gzip
                    "Accept-Encoding": accept_encoding or "identity",
                    "Accept": "*/*",
                    "User-Agent": self.config.user_agent,
                },
            )
        except UpstreamError as exc:
            return self._finish(exchange, self._upstream_error(exc))

        headers = cors_headers()
        copy_headers(headers, upstream.headers, self.config.cache_headers)
        status = upstream.status_code

        if (
            request.method == "GET"
            and is_identity_encoding(upstream.headers.get("Content-Encoding"))
            and status == HTTP_200_OK
        ):
            exchange.cache_state = CacheState.MISS
            try:
                body = await read_body(upstream)
            except httpx.HTTPError as exc:
                return self._finish(exchange, self._read_failed(exc, status, headers))

            ttl = parse_max_age(upstream.headers.get("Cache-Control"))
            if ttl is not None:
                stored: dict[str, str] = {}
                copy_headers(stored, upstream.headers, self.config.cache_headers)
                await self.backend.set(
                    key,
                    CacheEntry(
                        status=status,
                        headers=MappingProxyType(stored),
                        body=body,
                        expires=self.clock() + ttl,
                    ),
                )
                exchange.cache_state = CacheState.MISS_CACHED
            return self._finish(
                exchange, Response(content=body, status_code=status, headers=headers)
            )

        if request.method == "HEAD":
            await upstream.aclose()
            response = Response(status_code=status, headers=headers)
            # Content-Length describes the GET body, or is left off when unknown
            del response.headers["content-length"]
            copy_headers(response.headers, upstream.headers, ("Content-Length",))
            return self._finish(exchange, response)

        exchange.status = status
        return StreamingResponse(
            self._relay(upstream, exchange),
            status_code=status,
            headers=headers,
            background=BackgroundTask(self._log, exchange),
        )

    async def _relay(
        self, upstream: httpx.Response, exchange: Exchange
    ) -> AsyncIterator[bytes]:
        """Yield upstream bytes untouched, counting them for the log line."""
        try:
            async for chunk in upstream.aiter_raw():
                exchange.written += len(chunk)
                yield chunk
        except httpx.HTTPError as exc:
            logger.warning(
                "Upstream stream from %s broke off: %r", exchange.target, exc
            )
        finally:
            await upstream.aclose()

    def _start(self, kind: str, request: Request) -> Exchange:
        return Exchange(
            kind=kind,
            method=request.method,
            path=request_uri(request.url.path, request.url.query),
        )

    def _finish(self, exchange: Exchange, response: Response) -> Response:
        """Attach the access log to a buffered response.

        HEAD responses keep the headers, including Content-Length, of the
        equivalent GET but carry no body.
        """
        if exchange.method == "HEAD":
            response.body = b""
        exchange.status = response.status_code
        exchange.written = len(response.body)
        response.background = BackgroundTask(self._log, exchange)
        return response

    def _log(self, exchange: Exchange) -> None:
        logger.info(
            LOG_FORMAT,
            exchange.kind,
            exchange.method,
            exchange.status,
            exchange.written,
            format_duration(time.perf_counter() - exchange.started),
            exchange.cache_state,
            exchange.path,
            exchange.target,
        )

    def _preflight(self) -> Response:
        return Response(status_code=HTTP_204_NO_CONTENT, headers=cors_headers())

    def _error(self, message: str, status_code: int) -> Response:
        return PlainTextResponse(
            f"{message}\n", status_code=status_code, headers=cors_headers()
        )

    def _method_not_allowed(self) -> Response:
        return self._error("method not allowed", HTTP_405_METHOD_NOT_ALLOWED)

    def _upstream_error(self, exc: UpstreamError) -> Response:
        return self._error(f"upstream error: {exc}", HTTP_502_BAD_GATEWAY)

    def _read_failed(
        self, exc: Exception, status: int, headers: dict[str, str]
    ) -> Response:
        logger.warning("Reading upstream body failed: %s", exc)
        return Response(
            content=f"<!-- read body failed: {exc} -->",
            status_code=status,
            headers=headers,
        )
