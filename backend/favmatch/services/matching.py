"""Matching engine: reciprocal matches from shared favorites.

Pipeline for one user:
1. Count shared favorites per other user via the favorite index
2. Keep candidates at or above the content threshold, not yet matched
3. Drop candidates whose quota is in cooldown
4. Drop candidates whose gender/location preferences disagree
5. For a gated search, stop after the user's remaining match allowance
6. Write the match on both users, then consume one match unit per side

Each accepted match is committed on its own, so a scan interrupted halfway
leaves only complete matches behind. Quota bookkeeping after a match is
best-effort: a failure there never removes the match.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from favmatch.errors import ContentionError, UserNotFoundError
from favmatch.models.documents import USERS, MatchInfo, User
from favmatch.services.compatibility import UserPrefs, is_compatible
from favmatch.services.favorite_index import FavoriteIndex
from favmatch.services.quota import DenyReason, QuotaKind, can_consume, remaining
from favmatch.services.quota_service import QuotaService
from favmatch.store.base import DataStore, DocumentMutation

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    """Result of a match search. `remaining` is None when unlimited."""
    allowed: bool
    new_matches: list[MatchInfo] = field(default_factory=list)
    remaining: Optional[int] = 0
    reason: Optional[DenyReason] = None
    cooldown_remaining_seconds: int = 0
    deferred: int = 0           # eligible candidates left for a later search
    refreshed: int = 0          # existing matches whose strength changed


class MatchingEngine:
    """Discovers and records matches between users with shared favorites."""

    def __init__(
        self,
        store: DataStore,
        quotas: QuotaService,
        index: FavoriteIndex,
        content_threshold: int = 3,
    ):
        self.store = store
        self.quotas = quotas
        self.index = index
        self.content_threshold = content_threshold

    # ── Entry points ─────────────────────────────────────────────

    async def search_matches(self, user_id: str) -> SearchOutcome:
        """Quota-gated search: at most the user's remaining match allowance."""
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        quota = await self.quotas.refresh(user_id)
        decision = can_consume(quota, QuotaKind.MATCH, self.quotas.clock(), self.quotas.policy)
        if not decision.allowed:
            logger.info("Match search for %s denied: %s", user_id, decision.reason.value)
            return SearchOutcome(
                allowed=False,
                remaining=0,
                reason=decision.reason,
                cooldown_remaining_seconds=decision.cooldown_remaining_seconds,
            )
        return await self.discover_matches(user, cap=decision.remaining)

    async def recompute_matches(self, user_id: str) -> SearchOutcome:
        """Passive recomputation after a favorite change. Not capped.

        A user in cooldown only gets their existing match strengths refreshed,
        and a scan stops adding matches once it puts the user into cooldown.
        """
        user = await self.store.get_user(user_id)
        if user is None:
            return SearchOutcome(allowed=False)

        quota = await self.quotas.get_quota(user_id)
        cap = None if quota.is_premium or quota.available_for_matching else 0
        return await self.discover_matches(user, cap=cap)

    async def list_matches(self, user_id: str) -> list[MatchInfo]:
        """A user's matches, strongest first."""
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        matches = [
            user.matches_data.get(uid) or MatchInfo(user_id=uid)
            for uid in user.matches
        ]
        matches.sort(key=lambda m: (-m.match_strength, m.user_id))
        return matches

    # ── Core algorithm ───────────────────────────────────────────

    async def discover_matches(
        self,
        user: User,
        content_threshold: Optional[int] = None,
        cap: Optional[int] = None,
    ) -> SearchOutcome:
        """Find and record new matches for `user`.

        Args:
            user: The user searching, as currently stored
            content_threshold: Shared titles required (defaults to the engine's)
            cap: Max new matches to accept this call (None = unlimited)
        """
        threshold = self.content_threshold if content_threshold is None else content_threshold
        counts = await self.index.count_shared(user)

        refreshed = await self._refresh_strengths(user, counts)

        candidates = sorted(
            (
                (uid, shared) for uid, shared in counts.items()
                if uid != user.user_id and not user.is_matched_with(uid) and shared >= threshold
            ),
            key=lambda c: (-c[1], c[0]),
        )

        prefs = UserPrefs.from_user(user)
        accepted: list[MatchInfo] = []
        deferred = 0

        for uid, shared in candidates:
            if cap is not None and len(accepted) >= cap:
                deferred += 1
                continue

            # A match accepted earlier in this scan may have started our cooldown
            own_quota = await self.quotas.get_quota(user.user_id)
            if not (own_quota.is_premium or own_quota.available_for_matching):
                deferred += 1
                continue

            other_quota = await self.quotas.get_quota(uid)
            if not (other_quota.is_premium or other_quota.available_for_matching):
                logger.debug("Skipping %s for %s: in cooldown", uid, user.user_id)
                continue

            other = await self.store.get_user(uid)
            if other is None:
                # Index entry for a user that no longer exists
                continue
            if not is_compatible(prefs, UserPrefs.from_user(other)):
                continue

            info = await self._create_match(user, other, shared)
            if info is None:
                continue
            accepted.append(info)
            await self._consume_match_units(user.user_id, uid)

        quota = await self.quotas.get_quota(user.user_id)
        now = self.quotas.clock()
        logger.info(
            "Matches for %s: %d candidates, %d new, %d deferred",
            user.user_id, len(candidates), len(accepted), deferred,
        )
        return SearchOutcome(
            allowed=True,
            new_matches=accepted,
            remaining=remaining(quota, QuotaKind.MATCH, now, self.quotas.policy),
            deferred=deferred,
            refreshed=refreshed,
        )

    # ── Internal ─────────────────────────────────────────────────

    async def _create_match(self, user: User, other: User, shared: int) -> Optional[MatchInfo]:
        """Write the match on both users in one transaction.

        Returns what `user` now knows about `other`, or None if the match
        already existed (nothing is consumed then).
        """
        box: dict[str, MatchInfo] = {}

        def link(owner_id: str, partner: User, record_result: bool, now):
            def mutate(data: Optional[dict]) -> Optional[dict]:
                if data is None:
                    # Abort: never write one side of a match
                    raise UserNotFoundError(owner_id)
                owner = User.from_document(data)
                if owner.is_matched_with(partner.user_id):
                    return None
                info = partner.match_info(shared, now)
                owner.matches.append(partner.user_id)
                owner.matches_data[partner.user_id] = info
                if record_result:
                    box["info"] = info
                return owner.to_document()
            return DocumentMutation(USERS, owner_id, mutate)

        def build(now):
            box.clear()
            return [
                link(user.user_id, other, True, now),
                link(other.user_id, user, False, now),
            ]

        try:
            await self.quotas.run_atomic(build, f"match {user.user_id} with {other.user_id}")
        except UserNotFoundError as e:
            logger.warning("Match %s/%s abandoned: %s", user.user_id, other.user_id, e)
            return None
        info = box.get("info")
        if info is not None:
            logger.info("Matched %s with %s (%d shared)", user.user_id, other.user_id, shared)
        return info

    async def _consume_match_units(self, user_id: str, other_id: str) -> None:
        for uid in (user_id, other_id):
            try:
                result = await self.quotas.register_match(uid)
            except ContentionError:
                logger.warning("Match quota for %s not recorded: contention", uid)
                continue
            if not result.allowed:
                logger.warning(
                    "Match quota for %s not recorded: %s", uid, result.decision.reason.value,
                )

    async def _refresh_strengths(self, user: User, counts) -> int:
        """Bring match_strength up to date on both sides of existing matches."""
        changed = 0
        for uid in user.matches:
            shared = counts.get(uid, 0)
            current = user.matches_data.get(uid)
            if current is None or current.match_strength == shared:
                continue

            def restamp(owner_id: str, partner_id: str, shared: int = shared):
                def mutate(data: Optional[dict]) -> Optional[dict]:
                    if data is None:
                        return None
                    owner = User.from_document(data)
                    info = owner.matches_data.get(partner_id)
                    if partner_id not in owner.matches or info is None or info.match_strength == shared:
                        return None
                    info.match_strength = shared
                    return owner.to_document()
                return DocumentMutation(USERS, owner_id, mutate)

            try:
                await self.quotas.run_atomic(
                    lambda now, uid=uid: [restamp(user.user_id, uid), restamp(uid, user.user_id)],
                    f"refresh match strength {user.user_id}/{uid}",
                )
            except ContentionError:
                logger.warning("Could not refresh match strength %s/%s", user.user_id, uid)
                continue
            changed += 1
        return changed
