"""In-process document store for tests and single-process development.

Documents carry a version number; a transaction snapshots the versions it
read, yields to the event loop, then commits only if nothing moved. This
reproduces the optimistic-concurrency behaviour of the SQL store.
"""

import asyncio
import copy
import logging
from typing import Optional, Sequence

from favmatch.errors import ContentionError
from favmatch.store.base import DataStore, DocumentMutation, Mutation, SetMutation, WriteResult

logger = logging.getLogger(__name__)


class MemoryDataStore(DataStore):
    """Dict-backed DataStore. Safe for concurrent coroutines in one loop."""

    def __init__(self):
        self._docs: dict[tuple[str, str], tuple[int, dict]] = {}
        self._sets: dict[tuple[str, str, str], set[str]] = {}
        self._commit_lock = asyncio.Lock()

    async def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        entry = self._docs.get((collection, doc_id))
        return copy.deepcopy(entry[1]) if entry else None

    async def get_set_members(self, collection: str, doc_id: str, field: str) -> set[str]:
        return set(self._sets.get((collection, doc_id, field), ()))

    async def list_document_ids(self, collection: str) -> list[str]:
        return sorted(doc_id for (coll, doc_id) in self._docs if coll == collection)

    async def transactional_update(self, records: Sequence[Mutation]) -> WriteResult:
        # Read phase
        read_versions: dict[tuple[str, str], int] = {}
        working: dict[tuple[str, str], Optional[dict]] = {}
        written: set[tuple[str, str]] = set()
        for rec in records:
            if not isinstance(rec, DocumentMutation):
                continue
            key = (rec.collection, rec.doc_id)
            if key not in working:
                entry = self._docs.get(key)
                read_versions[key] = entry[0] if entry else 0
                working[key] = copy.deepcopy(entry[1]) if entry else None
            new = rec.fn(copy.deepcopy(working[key]))
            if new is not None:
                working[key] = new
                written.add(key)

        # Let other transactions interleave between read and commit
        await asyncio.sleep(0)

        # Commit phase
        async with self._commit_lock:
            for key, version in read_versions.items():
                entry = self._docs.get(key)
                if (entry[0] if entry else 0) != version:
                    logger.debug("Version conflict on %s/%s", *key)
                    raise ContentionError(f"Concurrent update on {key[0]}/{key[1]}")

            result: WriteResult = {}
            for key, version in read_versions.items():
                if key not in written:
                    result[key] = None
                    continue
                self._docs[key] = (version + 1, copy.deepcopy(working[key]))
                result[key] = copy.deepcopy(working[key])

            for rec in records:
                if isinstance(rec, SetMutation):
                    members = self._sets.setdefault((rec.collection, rec.doc_id, rec.field), set())
                    if rec.remove:
                        members.discard(rec.value)
                    else:
                        members.add(rec.value)
            return result
