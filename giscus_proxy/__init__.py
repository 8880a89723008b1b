"""giscus-proxy: re-serve the giscus widget from your own origin."""

from .app import create_app as create_app
from .backends import BaseCacheBackend as BaseCacheBackend
from .backends import MemoryBackend as MemoryBackend
from .config import ProxyConfig as ProxyConfig
from .proxy import GiscusProxy as GiscusProxy
from .upstream import UpstreamClient as UpstreamClient

__all__ = [
    "BaseCacheBackend",
    "GiscusProxy",
    "MemoryBackend",
    "ProxyConfig",
    "UpstreamClient",
    "create_app",
]
