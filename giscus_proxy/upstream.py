"""Outbound HTTP client used by both handlers."""

from collections.abc import Mapping
from logging import getLogger
from typing import Optional

import httpx

from giscus_proxy.exceptions import UpstreamError

DEFAULT_TIMEOUT = 25.0

logger = getLogger(__name__)


class UpstreamClient:
    """Performs one outbound GET per call against the upstream service.

    Wraps a single long-lived ``httpx.AsyncClient``. Pass a preconfigured
    client (for example one with a mock transport) to replace the network.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

    async def fetch(self, url: str, headers: Mapping[str, str]) -> httpx.Response:
        """Send a GET and return the response with its body still unread.

        The caller must close the response.

        Raises:
            UpstreamError: On connect errors, timeouts and other transport failures
        """
        request = self.client.build_request("GET", url, headers=dict(headers))
        try:
            return await self.client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.warning("Upstream request to %s failed: %r", url, exc)
            raise UpstreamError(str(exc) or exc.__class__.__name__) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
