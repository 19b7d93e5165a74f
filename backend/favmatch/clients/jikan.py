"""Jikan client: anime metadata (unofficial MyAnimeList API v4).

No authentication; Jikan rate-limits aggressively, so callers treat any
failure as "no metadata" rather than an error.
"""

import httpx
from typing import Optional

from favmatch.clients.base import CatalogTitle, ITitleCatalog


class JikanClient(ITitleCatalog):

    def __init__(self, base_url: str = "https://api.jikan.moe/v4", transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def _get(self, path: str, params: dict | None = None) -> dict:
        async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
            resp = await client.get(f"{self.base_url}{path}", params=params)
            resp.raise_for_status()
            return resp.json()

    async def get_title(self, title_id: str) -> Optional[CatalogTitle]:
        try:
            payload = await self._get(f"/anime/{title_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        data = payload.get("data") or {}
        if not data:
            return None
        return CatalogTitle(
            title_id=str(data.get("mal_id", title_id)),
            title=data.get("title", ""),
            image_url=((data.get("images") or {}).get("jpg") or {}).get("image_url", ""),
            score=data.get("score"),
            kind=data.get("type"),
            episodes=data.get("episodes"),
        )

    async def test_connection(self) -> bool:
        try:
            await self._get("/anime/1")
            return True
        except httpx.HTTPError:
            return False
