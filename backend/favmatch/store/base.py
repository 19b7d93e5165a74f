"""Abstract document store consumed by the matching and quota services.

The store holds JSON documents keyed by (collection, id) plus set-valued
fields kept as individual members. Implementations must make
`transactional_update` all-or-nothing and detect concurrent writers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

from favmatch.models.documents import TITLE_INDEX, USERS, Category, User, index_key


# ── Mutation records ─────────────────────────────────────────────

DocumentFn = Callable[[Optional[dict]], Optional[dict]]


@dataclass
class DocumentMutation:
    """Read-modify-write of one document.

    `fn` receives a private copy of the current document (None if missing)
    and returns the new document, or None to leave it untouched. It may be
    called more than once when the caller retries, so it must not have side
    effects beyond its return value and the closure it reports into.
    """
    collection: str
    doc_id: str
    fn: DocumentFn


@dataclass
class SetMutation:
    """Atomic add/remove of one member of a set-valued field."""
    collection: str
    doc_id: str
    field: str
    value: str
    remove: bool = False


Mutation = Union[DocumentMutation, SetMutation]

# (collection, doc_id) -> document as written (None when left untouched)
WriteResult = dict[tuple[str, str], Optional[dict]]


@dataclass
class TitleIndexEntry:
    """Users who favorited one title. Missing entries are simply empty."""
    category: Category
    title_id: str
    users: set[str] = field(default_factory=set)


# ── Interface ────────────────────────────────────────────────────

class DataStore(ABC):
    """Narrow persistence contract: documents, set members, transactions."""

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        """Return a copy of one document, or None."""
        ...

    @abstractmethod
    async def get_set_members(self, collection: str, doc_id: str, field: str) -> set[str]:
        """Return the members of a set-valued field (empty if none)."""
        ...

    @abstractmethod
    async def list_document_ids(self, collection: str) -> list[str]:
        """List every document id in a collection."""
        ...

    @abstractmethod
    async def transactional_update(self, records: Sequence[Mutation]) -> WriteResult:
        """Apply all records atomically.

        Raises ContentionError if another writer changed one of the
        documents between read and commit; nothing is written in that case.
        """
        ...

    async def close(self) -> None:
        """Release connections. No-op by default."""
        return None

    # ── Convenience built on the primitives ──────────────────────

    async def get_user(self, user_id: str) -> Optional[User]:
        data = await self.get_document(USERS, user_id)
        return User.from_document(data) if data else None

    async def array_union(self, collection: str, doc_id: str, field: str, value: str) -> None:
        await self.transactional_update([SetMutation(collection, doc_id, field, value)])

    async def array_remove(self, collection: str, doc_id: str, field: str, value: str) -> None:
        await self.transactional_update([SetMutation(collection, doc_id, field, value, remove=True)])

    async def get_title_index(self, category: Category, title_id: str) -> TitleIndexEntry:
        users = await self.get_set_members(TITLE_INDEX, index_key(category, title_id), "users")
        return TitleIndexEntry(category=Category(category), title_id=title_id, users=users)
