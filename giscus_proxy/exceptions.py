class GiscusProxyError(Exception):
    """Base class for all exceptions in giscus-proxy."""


class ReplacementRuleError(GiscusProxyError):
    """Exception raised for a malformed or uncompilable ``rep`` rule."""


class UpstreamError(GiscusProxyError):
    """Exception raised when the upstream request fails in transport."""


class UnsupportedEncodingError(GiscusProxyError):
    """Exception raised for a content-encoding the proxy cannot decode."""


class ContentDecodingError(GiscusProxyError):
    """Exception raised when an encoded body is corrupt."""


class EncodingHeaderError(GiscusProxyError):
    """Exception raised when an encoded body does not start with a valid header."""
