"""Header, encoding and log formatting helpers shared by both handlers."""

import gzip
import zlib
from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import MutableMapping
from typing import Optional

from giscus_proxy.exceptions import ContentDecodingError
from giscus_proxy.exceptions import EncodingHeaderError
from giscus_proxy.exceptions import UnsupportedEncodingError

CORS_ALLOW_METHODS = "GET,HEAD,OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type,Authorization,Accept"

# Placeholder used in the log line when a cache state does not apply
NO_CACHE_STATE = "-"

GZIP_MAGIC = b"\x1f\x8b"
GZIP_METHOD_DEFLATE = 8
GZIP_HEADER_SIZE = 10

LOG_FORMAT = (
    "%-6s method=%-4s status=%3d bytes=%8d dur=%9s cache=%-10s path=%s target=%s"
)


def cors_headers() -> dict[str, str]:
    """Permissive cross-origin headers added to every response."""
    return {
        "Access-Control-Allow-Origin": "*",
        "Vary": "Origin",
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }


def copy_headers(
    dst: MutableMapping[str, str],
    src: Mapping[str, str],
    keys: Iterable[str],
) -> None:
    """Copy the named headers from src to dst, skipping empty values.

    Headers absent from src are left untouched in dst.
    """
    for key in keys:
        value = src.get(key)
        if value:
            dst[key] = value


def normalize_encoding(content_encoding: Optional[str]) -> str:
    return (content_encoding or "").strip().lower()


def is_identity_encoding(content_encoding: Optional[str]) -> bool:
    return normalize_encoding(content_encoding) in ("", "identity")


def decompress(body: bytes, content_encoding: Optional[str]) -> bytes:
    """Decode a response body according to its Content-Encoding.

    Args:
        body: Raw bytes as received from upstream
        content_encoding: The upstream Content-Encoding header, if any

    Returns:
        The decoded body

    Raises:
        UnsupportedEncodingError: If the encoding is neither identity nor gzip
        EncodingHeaderError: If a gzip body lacks a valid member header
        ContentDecodingError: If a gzip body is corrupt or truncated past its header
    """
    encoding = normalize_encoding(content_encoding)
    if encoding in ("", "identity"):
        return body
    if encoding == "gzip":
        if (
            len(body) < GZIP_HEADER_SIZE
            or body[:2] != GZIP_MAGIC
            or body[2] != GZIP_METHOD_DEFLATE
        ):
            msg = "gzip: invalid header"
            raise EncodingHeaderError(msg)
        try:
            return gzip.decompress(body)
        except (OSError, EOFError, zlib.error) as exc:
            msg = f"gzip decode failed: {exc}"
            raise ContentDecodingError(msg) from exc

    msg = f"unsupported content-encoding: {encoding}"
    raise UnsupportedEncodingError(msg)


def parse_max_age(cache_control: Optional[str]) -> Optional[int]:
    """Return the positive max-age in seconds from a Cache-Control value."""
    if not cache_control:
        return None
    for directive in cache_control.split(","):
        directive = directive.strip()
        if directive.lower().startswith("max-age="):
            value = directive[len("max-age=") :].strip()
            try:
                seconds = int(value)
            except ValueError:
                continue
            if seconds > 0:
                return seconds
    return None


def request_uri(path: str, query: str) -> str:
    return f"{path}?{query}" if query else path


def cache_key(method: str, path: str, query: str, accept_encoding: str) -> str:
    """Build the response cache key.

    Only the method, the request URI and the trimmed Accept-Encoding header
    take part in the key.
    """
    return f"{method} {request_uri(path, query)} ae={accept_encoding.strip()}"


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{int(seconds * 1000):4d}ms"
    return f"{seconds:6.2f}s"
