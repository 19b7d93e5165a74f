"""Shared fixtures: an in-memory store, a controllable clock, the service stack."""

from datetime import datetime, timedelta, timezone

import pytest

from favmatch.config import Settings
from favmatch.models.documents import QUOTAS, USERS, Category, FavoriteTitle, User
from favmatch.services.container import Services, build_services
from favmatch.services.favorite_index import FavoriteIndex
from favmatch.services.quota import UsageQuota
from favmatch.store.base import DocumentMutation
from favmatch.store.memory import MemoryDataStore


START = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when a test says so."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        store_backend="memory",
        sweeper_enabled=False,
        transaction_backoff_seconds=0,
        _env_file=None,
    )


@pytest.fixture
def store() -> MemoryDataStore:
    return MemoryDataStore()


@pytest.fixture
def services(store, test_settings, clock) -> Services:
    return build_services(store, test_settings, clock=clock)


async def seed_user(store, user_id: str, titles: dict[Category, list[str]] | None = None, **prefs) -> User:
    """Write a user and their index entries directly, without triggering matching."""
    user = User(user_id=user_id, display_name=user_id.title(), created_at=START, **prefs)
    for category, ids in (titles or {}).items():
        user.favorites[category] = {tid: FavoriteTitle(tid, f"Title {tid}", added_at=START) for tid in ids}

    index = FavoriteIndex(store)
    records = [index.add_mutation(user_id, c, tid) for c, tid in user.favorite_keys()]
    records.append(_put(USERS, user_id, user.to_document()))
    await store.transactional_update(records)
    return user


async def seed_quota(store, quota: UsageQuota) -> None:
    await store.transactional_update([_put(QUOTAS, quota.user_id, quota.to_document())])


def _put(collection: str, doc_id: str, doc: dict):
    return DocumentMutation(collection, doc_id, lambda _current: doc)
