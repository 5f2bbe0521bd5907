"""
Async HTTP source for the remote listing snapshot.

One GET returns the whole practices-for-sale page; detail pages are fetched
per reference only when enrichment is on. Transport problems and non-2xx
answers both surface as NetworkFailureError so the reconciler can treat
them uniformly. Timeouts are configured here, not in the reconciler.
"""
from typing import Optional

import httpx

from marketplace.config import Settings, get_settings
from marketplace.errors import NetworkFailureError, NotConfiguredError

USER_AGENT = "marketplace-sync/0.1"


class ListingsSource:
    """
    Thin async wrapper over httpx for the listings website.

    Pass a transport in tests (httpx.MockTransport) to avoid real network I/O.
    """

    def __init__(
        self,
        url: str,
        detail_url_template: Optional[str] = None,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.detail_url_template = detail_url_template
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ListingsSource":
        settings = settings or get_settings()
        return cls(
            url=settings.listings_source_url,
            detail_url_template=settings.listings_detail_url_template,
            timeout=settings.http_timeout_seconds,
        )

    async def fetch_snapshot(self) -> str:
        """
        Fetch the listing page HTML.

        Raises:
            NotConfiguredError: if no source URL is set.
            NetworkFailureError: on transport errors or non-2xx responses.
        """
        if not self.url:
            raise NotConfiguredError("No listings source URL configured")
        return await self._get_text(self.url)

    async def fetch_detail(self, ref: str) -> str:
        """Fetch one practice detail page by its website reference."""
        if not self.detail_url_template:
            raise NotConfiguredError("No listing detail URL template configured")
        return await self._get_text(self.detail_url_template.format(ref=ref))

    async def _get_text(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.text
        except httpx.HTTPError as exc:
            raise NetworkFailureError(f"GET {url} failed: {exc}") from exc
