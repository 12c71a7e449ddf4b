"""
Client for a remote fetch-and-render service.

The service performs the equivalent of a local session plus challenge wait
on its side. It is called with the target URL and readiness selector as
query parameters and answers with a JSON body {"data": [markup, ...]}.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from gatedfeed.crawler.render_provider import FetchTarget
from gatedfeed.utils.config import Settings, get_settings
from gatedfeed.utils.errors import ConfigurationError, RemoteFetchFailed
from gatedfeed.utils.logging import get_logger

logger = get_logger(__name__)


class RemoteFetchClient:
    """Renderer backed by the remote rendering service.

    Args:
        service_url: Endpoint of the rendering service.
        timeout: Default hard timeout in seconds.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        service_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not service_url:
            raise ConfigurationError("Remote rendering service URL is empty")
        self.service_url = service_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> RemoteFetchClient:
        remote = (settings or get_settings()).remote
        if not remote.service_url:
            raise ConfigurationError("remote.service_url is not configured")
        return cls(remote.service_url, timeout=remote.timeout, transport=transport)

    @property
    def name(self) -> str:
        return "remote_service"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def fetch_snapshots(self, target: FetchTarget, budget: float | None = None) -> list[str]:
        """Request rendered snapshots for target.

        Raises:
            RemoteFetchFailed: On transport error, timeout, non-2xx status
                or a body that is not {"data": [...]}.
        """
        client = await self._get_client()
        params = {"url": target.url, "selector": target.readiness_selector}
        timeout = self.timeout if budget is None else budget

        try:
            # httpx timeouts are per phase; wait_for bounds the whole exchange
            response = await asyncio.wait_for(
                client.get(self.service_url, params=params, timeout=timeout),
                timeout=timeout,
            )
            response.raise_for_status()
            payload: Any = response.json()
        except (TimeoutError, httpx.TimeoutException) as e:
            raise RemoteFetchFailed(
                f"Remote render timed out after {timeout}s",
                details={"url": target.url},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise RemoteFetchFailed(
                f"Remote render failed: {e}",
                details={"url": target.url},
            ) from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise RemoteFetchFailed(
                "Remote render response has no data array",
                details={"url": target.url},
            )
        return [item for item in data if isinstance(item, str)]

    async def render(self, target: FetchTarget, budget: float | None = None) -> str:
        """Render target remotely.

        Returns:
            The first snapshot, or "" when the service failed or returned none.
        """
        try:
            snapshots = await self.fetch_snapshots(target, budget)
        except RemoteFetchFailed as e:
            logger.warning("Remote render failed", url=target.url[:120], error=e.message)
            return ""

        if not snapshots:
            logger.warning("Remote render returned no snapshot", url=target.url[:120])
            return ""

        logger.info(
            "Remote render success",
            url=target.url[:120],
            content_length=len(snapshots[0]),
            snapshots=len(snapshots),
        )
        return snapshots[0]

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Remote fetch client closed")
