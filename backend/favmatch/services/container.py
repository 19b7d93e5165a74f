"""Wires the service stack around one store."""

from dataclasses import dataclass
from typing import Optional

from favmatch.clients.catalog import TitleCatalog
from favmatch.config import Settings
from favmatch.services.cooldown_sweeper import CooldownSweeper
from favmatch.services.favorite_index import FavoriteIndex
from favmatch.services.favorites import FavoritesService
from favmatch.services.matching import MatchingEngine
from favmatch.services.profiles import ProfileService
from favmatch.services.quota_service import Clock, QuotaService, utcnow
from favmatch.store.base import DataStore


@dataclass
class Services:
    store: DataStore
    quotas: QuotaService
    index: FavoriteIndex
    matching: MatchingEngine
    favorites: FavoritesService
    profiles: ProfileService
    sweeper: CooldownSweeper


def build_services(
    store: DataStore,
    settings: Settings,
    clock: Clock = utcnow,
    catalog: Optional[TitleCatalog] = None,
) -> Services:
    quotas = QuotaService.from_settings(store, settings, clock=clock)
    index = FavoriteIndex(store)
    matching = MatchingEngine(store, quotas, index, content_threshold=settings.content_match_threshold)
    favorites = FavoritesService(
        store, quotas, index, matching,
        catalog=catalog,
        max_favorites_free=settings.max_favorites_free,
        max_favorites_premium=settings.max_favorites_premium,
    )
    return Services(
        store=store,
        quotas=quotas,
        index=index,
        matching=matching,
        favorites=favorites,
        profiles=ProfileService(store, quotas),
        sweeper=CooldownSweeper(quotas, interval_seconds=settings.sweeper_interval_seconds),
    )
