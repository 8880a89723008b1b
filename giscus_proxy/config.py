"""Proxy and server configuration settings."""

import os
from collections.abc import Mapping
from typing import Optional

from pydantic import BaseModel
from pydantic import Field

DEFAULT_UPSTREAM_ORIGIN = "https://giscus.app"
DEFAULT_USER_AGENT = "giscus-proxy/clean-1.0"


class ProxyConfig(BaseModel):
    """Request-handling settings for the proxy core."""

    # Upstream
    upstream_origin: str = Field(
        default=DEFAULT_UPSTREAM_ORIGIN,
        description="Scheme and host every request is forwarded to",
    )
    widget_source_path: str = Field(
        default="/en/widget",
        description="Upstream path of the widget document",
    )
    widget_paths: list[str] = Field(
        default=["/widget", "/en/widget"],
        min_length=1,
        description="Local paths served by the widget handler",
    )
    upstream_timeout: float = Field(
        default=25.0,
        gt=0,
        description="Timeout in seconds for a single upstream request",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent sent on every upstream request",
    )

    # Cache
    cache_headers: list[str] = Field(
        default=[
            "Content-Type",
            "Content-Encoding",
            "Cache-Control",
            "ETag",
            "Last-Modified",
            "Vary",
        ],
        description="Upstream headers forwarded by the passthrough handler and kept in cache entries",
    )
    cache_max_entries: int = Field(
        default=512,
        ge=1,
        description="Maximum number of cached passthrough responses",
    )


def get_env(key: str, default: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Return the trimmed value of an environment variable, or default when unset."""
    env = os.environ if environ is None else environ
    value = env.get(key, "").strip()
    return value or default


def ensure_url(value: str, default_scheme: str = "") -> str:
    """Normalise a host or URL into a URL, adding a scheme when missing."""
    value = value.strip()
    if not value:
        return ""
    if value.startswith(("http://", "https://")):
        return value
    return f"{default_scheme or 'https'}://{value}"


def derive_public_url(
    bind_addr: str,
    host: str,
    port: str,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Best-effort public URL of the service, used in the startup log line.

    Platform hints win over the bind address. Wildcard hosts are shown as
    localhost.
    """
    env = os.environ if environ is None else environ
    for key, scheme in (
        ("PUBLIC_URL", ""),
        ("RAILWAY_PUBLIC_DOMAIN", "https"),
        ("RAILWAY_URL", ""),
    ):
        url = ensure_url(env.get(key, ""), scheme)
        if url:
            return url

    port = port.strip()
    host = host.strip()
    if not port:
        if bind_addr.startswith(":"):
            port = bind_addr[1:]
        elif ":" in bind_addr:
            port = bind_addr.rpartition(":")[2]
    if not host:
        if bind_addr.startswith(":") or not bind_addr:
            host = "localhost"
        elif ":" in bind_addr:
            host = bind_addr.rpartition(":")[0]
    if host in ("0.0.0.0", "::", "[::]", ""):  # noqa: S104
        host = "localhost"
    return f"http://{host}:{port or '8080'}"


class ServerSettings(BaseModel):
    """Listener settings resolved from the environment."""

    bind_addr: str = Field(
        default="0.0.0.0:8080",
        description="Resolved host:port the server listens on",
    )
    public_url: str = Field(
        default="http://localhost:8080",
        description="URL the service is reachable at, for logging only",
    )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerSettings":
        """Resolve settings from ADDR, or HOST and PORT when ADDR is unset."""
        env = os.environ if environ is None else environ
        addr = env.get("ADDR", "").strip()
        if not addr:
            host = get_env("HOST", "0.0.0.0", env)  # noqa: S104
            port = get_env("PORT", "8080", env).removeprefix(":")
            addr = f"{host}:{port}"

        public_url = derive_public_url(
            addr,
            get_env("HOST", "", env),
            get_env("PORT", "", env).removeprefix(":"),
            env,
        )
        return cls(bind_addr=addr, public_url=public_url)

    @property
    def host(self) -> str:
        host = self.bind_addr.rpartition(":")[0]
        return host.strip("[]") or "0.0.0.0"  # noqa: S104

    @property
    def port(self) -> int:
        return int(self.bind_addr.rpartition(":")[2] or "8080")
