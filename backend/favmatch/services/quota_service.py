"""Quota service: applies quota transitions atomically against the store.

Every gated mutation (favorite removal, match registration, premium upgrade)
is one read-modify-write of the user's quota document inside
`DataStore.transactional_update`. Other records may ride along in the same
transaction; if the quota check fails inside it, nothing is written.
Conflicts with a concurrent writer are retried with exponential backoff.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from favmatch.config import Settings
from favmatch.errors import ContentionError, QuotaExceeded
from favmatch.models.documents import QUOTAS, Category
from favmatch.services.quota import (
    QuotaDecision, QuotaKind, QuotaPolicy, QuotaState, UsageQuota,
    can_consume, consume, cooldown_remaining, maybe_expire_cooldown, remaining, state,
)
from favmatch.store.base import DataStore, DocumentMutation, Mutation, WriteResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
MutationBuilder = Callable[[datetime], Sequence[Mutation]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConsumeResult:
    """Decision for one gated operation plus the quota as it now stands."""
    decision: QuotaDecision
    quota: UsageQuota

    @property
    def allowed(self) -> bool:
        return self.decision.allowed


@dataclass
class QuotaStatus:
    """Pull-style snapshot for clients rendering limits and countdowns."""
    user_id: str
    tier: str                                # "free" | "premium"
    state: QuotaState
    remaining_changes: Optional[int]         # None = unlimited
    remaining_matches: Optional[int]
    cooldown_remaining_seconds: int
    changes_this_week: int
    match_count: int
    match_threshold: int
    favorites_count: dict[str, int]


class QuotaService:
    """Transactional wrapper around the pure quota state machine."""

    def __init__(
        self,
        store: DataStore,
        policy: QuotaPolicy = QuotaPolicy(),
        clock: Clock = utcnow,
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
    ):
        self.store = store
        self.policy = policy
        self.clock = clock
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_settings(cls, store: DataStore, settings: Settings, clock: Clock = utcnow) -> "QuotaService":
        return cls(
            store,
            policy=QuotaPolicy.from_settings(settings),
            clock=clock,
            max_attempts=settings.transaction_max_attempts,
            backoff_seconds=settings.transaction_backoff_seconds,
        )

    # ── Reads ────────────────────────────────────────────────────

    async def get_quota(self, user_id: str) -> UsageQuota:
        """Current quota with lazy expiry applied (not persisted)."""
        data = await self.store.get_document(QUOTAS, user_id)
        return self._load(data, user_id, self.clock())

    async def get_status(self, user_id: str) -> QuotaStatus:
        quota = await self.refresh(user_id)
        now = self.clock()
        return QuotaStatus(
            user_id=user_id,
            tier="premium" if quota.is_premium else "free",
            state=state(quota, now, self.policy),
            remaining_changes=remaining(quota, QuotaKind.CHANGE, now, self.policy),
            remaining_matches=remaining(quota, QuotaKind.MATCH, now, self.policy),
            cooldown_remaining_seconds=cooldown_remaining(quota, now, self.policy),
            changes_this_week=quota.changes_this_week,
            match_count=quota.match_count,
            match_threshold=quota.match_threshold,
            favorites_count=dict(quota.favorites_count),
        )

    # ── Writes ───────────────────────────────────────────────────

    async def refresh(self, user_id: str) -> UsageQuota:
        """Persist lazy expiry (and create the default record if missing)."""
        box: dict[str, UsageQuota] = {}

        def build(now: datetime) -> list[Mutation]:
            def mutate(data: Optional[dict]) -> Optional[dict]:
                quota = self._load(data, user_id, now)
                box["quota"] = quota
                doc = quota.to_document()
                return doc if doc != data else None
            return [DocumentMutation(QUOTAS, user_id, mutate)]

        await self.run_atomic(build, f"refresh quota of {user_id}")
        return box["quota"]

    async def try_consume(
        self,
        user_id: str,
        kind: QuotaKind,
        extra: Optional[MutationBuilder] = None,
    ) -> ConsumeResult:
        """Consume one unit of `kind`, together with `extra` records, atomically.

        A denial is returned as a typed result and writes nothing.
        """
        quota = await self.get_quota(user_id)
        decision = can_consume(quota, kind, self.clock(), self.policy)
        if not decision.allowed:
            return ConsumeResult(decision, quota)

        box: dict[str, UsageQuota] = {}

        def build(now: datetime) -> list[Mutation]:
            def mutate(data: Optional[dict]) -> Optional[dict]:
                current = self._load(data, user_id, now)
                updated = consume(current, kind, now, self.policy)
                box["quota"] = updated
                doc = updated.to_document()
                return doc if doc != data else None
            records: list[Mutation] = [DocumentMutation(QUOTAS, user_id, mutate)]
            if extra is not None:
                records.extend(extra(now))
            return records

        try:
            await self.run_atomic(build, f"consume {kind.value} for {user_id}")
        except QuotaExceeded:
            # Another session took the last unit between our check and commit
            quota = await self.get_quota(user_id)
            return ConsumeResult(can_consume(quota, kind, self.clock(), self.policy), quota)

        updated = box["quota"]
        now = self.clock()
        return ConsumeResult(
            QuotaDecision(
                allowed=True,
                remaining=remaining(updated, kind, now, self.policy),
                cooldown_remaining_seconds=cooldown_remaining(updated, now, self.policy),
            ),
            updated,
        )

    async def register_match(self, user_id: str) -> ConsumeResult:
        return await self.try_consume(user_id, QuotaKind.MATCH)

    async def upgrade_to_premium(self, user_id: str) -> UsageQuota:
        box: dict[str, UsageQuota] = {}

        def build(now: datetime) -> list[Mutation]:
            def mutate(data: Optional[dict]) -> Optional[dict]:
                quota = replace(self._load(data, user_id, now), is_premium=True)
                box["quota"] = quota
                return quota.to_document()
            return [DocumentMutation(QUOTAS, user_id, mutate)]

        await self.run_atomic(build, f"upgrade {user_id} to premium")
        logger.info("User %s upgraded to premium", user_id)
        return box["quota"]

    def favorites_count_mutation(
        self,
        user_id: str,
        category: Category,
        count: Callable[[], int],
        now: datetime,
    ) -> DocumentMutation:
        """Record that keeps quota.favorites_count in step with the favorite list.

        `count` is evaluated when the record is applied, after the favorite
        list mutation earlier in the same transaction has run.
        """
        def mutate(data: Optional[dict]) -> Optional[dict]:
            quota = self._load(data, user_id, now)
            counts = dict(quota.favorites_count)
            counts[Category(category).value] = count()
            doc = replace(quota, favorites_count=counts).to_document()
            return doc if doc != data else None
        return DocumentMutation(QUOTAS, user_id, mutate)

    # ── Retry loop ───────────────────────────────────────────────

    async def run_atomic(self, build: MutationBuilder, what: str = "quota update") -> WriteResult:
        """Run build(now) as one transaction, retrying the whole thing on conflict."""
        delay = self.backoff_seconds
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self.store.transactional_update(build(self.clock()))
            except ContentionError as e:
                if attempt >= self.max_attempts:
                    logger.warning("Giving up on %s after %d attempts", what, attempt)
                    raise ContentionError(f"Could not {what}, please try again", attempts=attempt) from e
                logger.debug("Conflict on %s (attempt %d), retrying in %.3fs", what, attempt, delay)
                await asyncio.sleep(delay)
                delay *= 2

    def _load(self, data: Optional[dict], user_id: str, now: datetime) -> UsageQuota:
        quota = UsageQuota.from_document(data) if data else UsageQuota.default(user_id, self.policy, now)
        return maybe_expire_cooldown(quota, now, self.policy)
