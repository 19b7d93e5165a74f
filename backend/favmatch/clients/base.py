"""Abstract interface for title catalogs.

A catalog resolves the display metadata cached next to a favorite (title,
poster) when the caller only sends an id. Jikan serves anime, TMDB serves
dramas.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class CatalogTitle:
    """Display metadata for one title as returned by a catalog."""
    title_id: str
    title: str
    image_url: str = ""
    score: Optional[float] = None
    kind: Optional[str] = None         # "TV" | "Movie" | "OVA" ...
    episodes: Optional[int] = None


class ITitleCatalog(ABC):
    """Interface for title metadata sources (Jikan, TMDB)."""

    @abstractmethod
    async def get_title(self, title_id: str) -> Optional[CatalogTitle]:
        """Fetch one title's metadata, or None if the catalog does not know it."""
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test if the catalog is reachable."""
        ...
