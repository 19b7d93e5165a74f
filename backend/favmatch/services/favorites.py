"""Favorites service: adding and removing favorite titles.

Adding is free (bounded only by the tier's list capacity). Removing costs
one weekly change and goes through the quota service, so the quota
consumption, the favorite list, the title index and the favorites count are
committed together or not at all. After either change, matches are
recomputed passively; a failure there never fails the favorite change.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from favmatch.clients.catalog import TitleCatalog
from favmatch.errors import ContentionError, UserNotFoundError
from favmatch.models.documents import USERS, Category, FavoriteTitle, User
from favmatch.services.favorite_index import FavoriteIndex
from favmatch.services.matching import MatchingEngine, SearchOutcome
from favmatch.services.quota import QuotaDecision, QuotaKind
from favmatch.services.quota_service import QuotaService
from favmatch.store.base import DataStore, DocumentMutation, Mutation

logger = logging.getLogger(__name__)


class FavoriteReason(str, Enum):
    ALREADY_FAVORITE = "already_favorite"
    NOT_FAVORITE = "not_favorite"
    FAVORITES_FULL = "favorites_full"


class _Abort(Exception):
    """Raised inside a mutation to abandon the whole transaction."""

    def __init__(self, reason: FavoriteReason):
        super().__init__(reason.value)
        self.reason = reason


@dataclass
class FavoriteResult:
    success: bool
    reason: Optional[str] = None                  # FavoriteReason or quota DenyReason value
    decision: Optional[QuotaDecision] = None      # set for removals
    favorites: list[FavoriteTitle] = field(default_factory=list)
    matches: Optional[SearchOutcome] = None


class FavoritesService:

    def __init__(
        self,
        store: DataStore,
        quotas: QuotaService,
        index: FavoriteIndex,
        matching: MatchingEngine,
        catalog: Optional[TitleCatalog] = None,
        max_favorites_free: int = 5,
        max_favorites_premium: int = 10,
    ):
        self.store = store
        self.quotas = quotas
        self.index = index
        self.matching = matching
        self.catalog = catalog
        self.max_favorites_free = max_favorites_free
        self.max_favorites_premium = max_favorites_premium

    async def list_favorites(self, user_id: str) -> dict[Category, list[FavoriteTitle]]:
        user = await self._require_user(user_id)
        return {category: _sorted(user.favorites_in(category)) for category in Category}

    async def add_favorite(self, user_id: str, category: Category, title: FavoriteTitle) -> FavoriteResult:
        category = Category(category)
        user = await self._require_user(user_id)
        if user.has_favorite(category, title.title_id):
            return FavoriteResult(
                success=True,
                reason=FavoriteReason.ALREADY_FAVORITE.value,
                favorites=_sorted(user.favorites_in(category)),
            )

        quota = await self.quotas.get_quota(user_id)
        capacity = self.max_favorites_premium if quota.is_premium else self.max_favorites_free
        if len(user.favorites_in(category)) >= capacity:
            return FavoriteResult(
                success=False,
                reason=FavoriteReason.FAVORITES_FULL.value,
                favorites=_sorted(user.favorites_in(category)),
            )

        title = await self._with_metadata(category, title)
        box: dict[str, User] = {}

        def build(now: datetime) -> list[Mutation]:
            def add(data: Optional[dict]) -> Optional[dict]:
                if data is None:
                    raise UserNotFoundError(user_id)
                owner = User.from_document(data)
                titles = owner.favorites.setdefault(category, {})
                if title.title_id in titles:
                    box["user"] = owner
                    return None
                if len(titles) >= capacity:
                    raise _Abort(FavoriteReason.FAVORITES_FULL)
                titles[title.title_id] = replace(title, added_at=now)
                box["user"] = owner
                return owner.to_document()

            return [
                DocumentMutation(USERS, user_id, add),
                self.index.add_mutation(user_id, category, title.title_id),
                self.quotas.favorites_count_mutation(
                    user_id, category, lambda: len(box["user"].favorites_in(category)), now,
                ),
            ]

        try:
            await self.quotas.run_atomic(build, f"add favorite {category.value}/{title.title_id} for {user_id}")
        except _Abort as e:
            return FavoriteResult(success=False, reason=e.reason.value)

        logger.info("User %s added %s/%s to favorites", user_id, category.value, title.title_id)
        return FavoriteResult(
            success=True,
            favorites=_sorted(box["user"].favorites_in(category)),
            matches=await self._recompute(user_id),
        )

    async def remove_favorite(self, user_id: str, category: Category, title_id: str) -> FavoriteResult:
        category = Category(category)
        user = await self._require_user(user_id)
        if not user.has_favorite(category, title_id):
            return FavoriteResult(success=False, reason=FavoriteReason.NOT_FAVORITE.value)

        box: dict[str, User] = {}

        def extra(now: datetime) -> list[Mutation]:
            def remove(data: Optional[dict]) -> Optional[dict]:
                if data is None:
                    raise UserNotFoundError(user_id)
                owner = User.from_document(data)
                titles = owner.favorites.get(category, {})
                if title_id not in titles:
                    raise _Abort(FavoriteReason.NOT_FAVORITE)
                del titles[title_id]
                box["user"] = owner
                return owner.to_document()

            return [
                DocumentMutation(USERS, user_id, remove),
                self.index.remove_mutation(user_id, category, title_id),
                self.quotas.favorites_count_mutation(
                    user_id, category, lambda: len(box["user"].favorites_in(category)), now,
                ),
            ]

        try:
            result = await self.quotas.try_consume(user_id, QuotaKind.CHANGE, extra=extra)
        except _Abort as e:
            return FavoriteResult(success=False, reason=e.reason.value)

        if not result.allowed:
            logger.info("User %s may not remove %s/%s: %s",
                        user_id, category.value, title_id, result.decision.reason.value)
            return FavoriteResult(
                success=False,
                reason=result.decision.reason.value,
                decision=result.decision,
                favorites=_sorted(user.favorites_in(category)),
            )

        logger.info("User %s removed %s/%s from favorites", user_id, category.value, title_id)
        return FavoriteResult(
            success=True,
            decision=result.decision,
            favorites=_sorted(box["user"].favorites_in(category)),
            matches=await self._recompute(user_id),
        )

    # ── Internal ─────────────────────────────────────────────────

    async def _require_user(self, user_id: str) -> User:
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def _with_metadata(self, category: Category, title: FavoriteTitle) -> FavoriteTitle:
        if title.title or self.catalog is None:
            return title
        found = await self.catalog.lookup(category, title.title_id)
        if found is None:
            return title
        return replace(title, title=found.title, image_url=title.image_url or found.image_url)

    async def _recompute(self, user_id: str) -> Optional[SearchOutcome]:
        try:
            return await self.matching.recompute_matches(user_id)
        except ContentionError as e:
            logger.warning("Match recomputation for %s skipped: %s", user_id, e)
            return None


def _sorted(titles: dict[str, FavoriteTitle]) -> list[FavoriteTitle]:
    return sorted(titles.values(), key=lambda t: (t.added_at is None, t.added_at, t.title_id))
