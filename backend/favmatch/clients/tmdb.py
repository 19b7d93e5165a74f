"""TMDB client: drama metadata for favorites.

Only the TV endpoints are needed: dramas are TMDB TV shows.
"""

import httpx
from typing import Optional

from favmatch.clients.base import CatalogTitle, ITitleCatalog


class TmdbClient(ITitleCatalog):
    """The Movie Database API v3 client."""

    BASE_URL = "https://api.themoviedb.org/3"
    IMAGE_BASE = "https://image.tmdb.org/t/p"

    def __init__(self, api_key: str, language: str = "en-US", transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.language = language
        self._transport = transport
        # Detect auth mode: JWT (v4 bearer) vs plain key (v3 query param)
        self._is_bearer = api_key.startswith("eyJ")

    async def _get(self, path: str, params: dict | None = None) -> dict:
        """Make authenticated GET request to TMDB.

        Supports both v3 (api_key query param) and v4 (Bearer token header).
        """
        all_params = {"language": self.language, **(params or {})}
        headers = {}

        if self._is_bearer:
            headers["Authorization"] = f"Bearer {self.api_key}"
        else:
            all_params["api_key"] = self.api_key

        async with httpx.AsyncClient(timeout=15.0, transport=self._transport) as client:
            resp = await client.get(f"{self.BASE_URL}{path}", params=all_params, headers=headers)
            resp.raise_for_status()
            return resp.json()

    async def get_title(self, title_id: str) -> Optional[CatalogTitle]:
        try:
            data = await self._get(f"/tv/{title_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return self._normalize_show(data)

    async def test_connection(self) -> bool:
        """Test TMDB API key validity."""
        try:
            await self._get("/configuration")
            return True
        except httpx.HTTPError:
            return False

    def _normalize_show(self, data: dict) -> CatalogTitle:
        return CatalogTitle(
            title_id=str(data["id"]),
            title=data.get("name", ""),
            image_url=self.poster_url(data.get("poster_path")) or "",
            score=data.get("vote_average"),
            kind="TV",
            episodes=data.get("number_of_episodes"),
        )

    @classmethod
    def poster_url(cls, path: Optional[str], size: str = "w500") -> Optional[str]:
        """Build full poster URL from TMDB path."""
        if not path:
            return None
        return f"{cls.IMAGE_BASE}/{size}{path}"
