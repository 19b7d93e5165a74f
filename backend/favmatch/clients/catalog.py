"""Routes metadata lookups to the catalog that owns each favorite category."""

import logging
from typing import Optional

import httpx

from favmatch.clients.base import CatalogTitle, ITitleCatalog
from favmatch.clients.jikan import JikanClient
from favmatch.clients.tmdb import TmdbClient
from favmatch.config import Settings
from favmatch.models.documents import Category

logger = logging.getLogger(__name__)


class TitleCatalog:
    """Per-category catalogs. Lookup failures degrade to None."""

    def __init__(self, catalogs: dict[Category, ITitleCatalog]):
        self.catalogs = catalogs

    @classmethod
    def from_settings(cls, settings: Settings) -> "TitleCatalog":
        catalogs: dict[Category, ITitleCatalog] = {Category.ANIME: JikanClient(settings.jikan_url)}
        if settings.has_tmdb:
            catalogs[Category.DRAMA] = TmdbClient(settings.tmdb_api_key, settings.tmdb_language)
        return cls(catalogs)

    async def lookup(self, category: Category, title_id: str) -> Optional[CatalogTitle]:
        catalog = self.catalogs.get(Category(category))
        if catalog is None:
            return None
        try:
            return await catalog.get_title(title_id)
        except httpx.HTTPError as e:
            logger.warning("Catalog lookup failed for %s/%s: %s", category, title_id, e)
            return None
