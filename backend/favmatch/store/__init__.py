"""Document store implementations and the factory used at startup."""

from favmatch.config import Settings
from favmatch.store.base import (  # noqa: F401
    DataStore, DocumentMutation, SetMutation, Mutation, TitleIndexEntry,
)
from favmatch.store.memory import MemoryDataStore


def build_store(settings: Settings) -> DataStore:
    """Pick the store backend named in settings, bound to its database_url."""
    if settings.uses_sql_store:
        from favmatch.database import build_engine
        from favmatch.store.sql import SqlDataStore
        return SqlDataStore(build_engine(settings.database_url, echo=settings.debug))
    return MemoryDataStore()
