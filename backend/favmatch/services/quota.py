"""Usage quota: the weekly change/match allowance and its cooldown window.

Pure state machine, no I/O. Every function takes the current time so that
only the service clock (never a client timestamp) decides transitions.

States:
- ACTIVE  : available_for_matching, counters below the threshold
- COOLDOWN: threshold reached; nothing may be consumed until the window ends

A consumed unit that brings its counter to the threshold starts the
cooldown. Expiry resets both counters. Premium quotas are never gated and
never counted.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from favmatch.config import Settings
from favmatch.errors import QuotaExceeded
from favmatch.models.documents import from_iso, to_iso

logger = logging.getLogger(__name__)


class QuotaKind(str, Enum):
    CHANGE = "change"   # removing a favorite
    MATCH = "match"     # receiving a new match


class QuotaState(str, Enum):
    ACTIVE = "active"
    COOLDOWN = "cooldown"


class DenyReason(str, Enum):
    LIMIT_REACHED = "limit_reached"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class QuotaPolicy:
    """Durations that govern every quota. Loaded from settings at startup."""
    cooldown: timedelta = timedelta(seconds=120)
    period: timedelta = timedelta(days=7)
    default_threshold: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "QuotaPolicy":
        return cls(
            cooldown=timedelta(seconds=settings.cooldown_seconds),
            period=timedelta(days=settings.quota_period_days),
            default_threshold=settings.quota_threshold,
        )


@dataclass
class UsageQuota:
    """One user's allowance record, persisted in the `quotas` collection."""
    user_id: str
    is_premium: bool = False
    changes_this_week: int = 0
    match_count: int = 0
    match_threshold: int = 2
    cooldown_started_at: Optional[datetime] = None
    available_for_matching: bool = True
    last_reset_at: Optional[datetime] = None
    favorites_count: dict[str, int] = field(default_factory=dict)   # informational, per category

    @classmethod
    def default(cls, user_id: str, policy: QuotaPolicy, now: datetime) -> "UsageQuota":
        return cls(user_id=user_id, match_threshold=policy.default_threshold, last_reset_at=now)

    def counter(self, kind: QuotaKind) -> int:
        return self.changes_this_week if kind == QuotaKind.CHANGE else self.match_count

    def with_counter(self, kind: QuotaKind, value: int) -> "UsageQuota":
        if kind == QuotaKind.CHANGE:
            return replace(self, changes_this_week=value)
        return replace(self, match_count=value)

    def to_document(self) -> dict:
        return {
            "user_id": self.user_id,
            "is_premium": self.is_premium,
            "changes_this_week": self.changes_this_week,
            "match_count": self.match_count,
            "match_threshold": self.match_threshold,
            "cooldown_started_at": to_iso(self.cooldown_started_at),
            "available_for_matching": self.available_for_matching,
            "last_reset_at": to_iso(self.last_reset_at),
            "favorites_count": dict(self.favorites_count),
        }

    @classmethod
    def from_document(cls, data: dict) -> "UsageQuota":
        return cls(
            user_id=data["user_id"],
            is_premium=bool(data.get("is_premium", False)),
            changes_this_week=int(data.get("changes_this_week", 0)),
            match_count=int(data.get("match_count", 0)),
            match_threshold=int(data.get("match_threshold", 2)),
            cooldown_started_at=from_iso(data.get("cooldown_started_at")),
            available_for_matching=bool(data.get("available_for_matching", True)),
            last_reset_at=from_iso(data.get("last_reset_at")),
            favorites_count=dict(data.get("favorites_count") or {}),
        )


@dataclass
class QuotaDecision:
    """Outcome of a gated operation. `remaining` is None when unlimited."""
    allowed: bool
    reason: Optional[DenyReason] = None
    remaining: Optional[int] = 0
    cooldown_remaining_seconds: int = 0


# ── Queries ──────────────────────────────────────────────────────

def cooldown_ends_at(quota: UsageQuota, policy: QuotaPolicy) -> Optional[datetime]:
    if quota.cooldown_started_at is None:
        return None
    return quota.cooldown_started_at + policy.cooldown


def in_cooldown(quota: UsageQuota, now: datetime, policy: QuotaPolicy) -> bool:
    ends = cooldown_ends_at(quota, policy)
    return ends is not None and now < ends


def state(quota: UsageQuota, now: datetime, policy: QuotaPolicy) -> QuotaState:
    return QuotaState.COOLDOWN if in_cooldown(quota, now, policy) else QuotaState.ACTIVE


def cooldown_remaining(quota: UsageQuota, now: datetime, policy: QuotaPolicy) -> int:
    """Whole seconds left in the cooldown window, rounded up. 0 when ACTIVE."""
    if quota.is_premium or not in_cooldown(quota, now, policy):
        return 0
    left = (cooldown_ends_at(quota, policy) - now).total_seconds()
    return max(0, math.ceil(left))


def _limit(quota: UsageQuota) -> int:
    # A threshold of 0 still admits the attempt that starts the cooldown
    return max(quota.match_threshold, 1)


def remaining(quota: UsageQuota, kind: QuotaKind, now: datetime, policy: QuotaPolicy) -> Optional[int]:
    if quota.is_premium:
        return None
    current = maybe_expire_cooldown(quota, now, policy)
    if in_cooldown(current, now, policy):
        return 0
    return max(0, _limit(current) - current.counter(kind))


# ── Transitions ──────────────────────────────────────────────────

def maybe_expire_cooldown(quota: UsageQuota, now: datetime, policy: QuotaPolicy) -> UsageQuota:
    """COOLDOWN → ACTIVE once the window has passed; weekly rollover otherwise.

    Also repairs `available_for_matching` if it disagrees with the cooldown
    timestamp.
    """
    if quota.cooldown_started_at is not None:
        if now >= quota.cooldown_started_at + policy.cooldown:
            logger.info("Cooldown expired for %s, resetting counters", quota.user_id)
            return replace(
                quota,
                changes_this_week=0,
                match_count=0,
                cooldown_started_at=None,
                available_for_matching=True,
                last_reset_at=now,
            )
        if quota.available_for_matching:
            return replace(quota, available_for_matching=False)
        return quota

    if not quota.available_for_matching:
        quota = replace(quota, available_for_matching=True)

    if quota.last_reset_at is None:
        return replace(quota, last_reset_at=now)
    if now >= quota.last_reset_at + policy.period:
        return replace(quota, changes_this_week=0, match_count=0, last_reset_at=now)
    return quota


def can_consume(quota: UsageQuota, kind: QuotaKind, now: datetime, policy: QuotaPolicy) -> QuotaDecision:
    """Would one more unit of `kind` be accepted? Side-effect free."""
    if quota.is_premium:
        return QuotaDecision(allowed=True, remaining=None)

    current = maybe_expire_cooldown(quota, now, policy)
    if in_cooldown(current, now, policy):
        return QuotaDecision(
            allowed=False,
            reason=DenyReason.COOLDOWN,
            remaining=0,
            cooldown_remaining_seconds=cooldown_remaining(current, now, policy),
        )

    left = _limit(current) - current.counter(kind)
    if left <= 0:
        return QuotaDecision(allowed=False, reason=DenyReason.LIMIT_REACHED, remaining=0)
    return QuotaDecision(allowed=True, remaining=left)


def consume(quota: UsageQuota, kind: QuotaKind, now: datetime, policy: QuotaPolicy) -> UsageQuota:
    """Consume one unit of `kind`, starting the cooldown at the threshold.

    Raises QuotaExceeded when can_consume would deny.
    """
    decision = can_consume(quota, kind, now, policy)
    if not decision.allowed:
        raise QuotaExceeded(decision.reason.value, remaining=0)
    if quota.is_premium:
        return quota

    current = maybe_expire_cooldown(quota, now, policy)
    count = current.counter(kind) + 1
    current = current.with_counter(kind, count)

    if count >= current.match_threshold:
        logger.info(
            "Quota threshold reached for %s (%s %d/%d), cooldown started",
            quota.user_id, kind.value, count, current.match_threshold,
        )
        current = replace(current, cooldown_started_at=now, available_for_matching=False)
    return current
