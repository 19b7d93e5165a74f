"""Favorite index: which users favorited each title.

The index is a keyed set in the store (`title_index/<category>:<title_id>`,
field `users`) mutated only through atomic set-add/set-remove, always in the
same transaction as the owner's favorite list.
"""

import logging
from collections import Counter, defaultdict

from favmatch.models.documents import TITLE_INDEX, USERS, Category, User, index_key
from favmatch.store.base import DataStore, SetMutation

logger = logging.getLogger(__name__)


class FavoriteIndex:
    """Reverse index from titles to fans, and shared-favorite counting."""

    FIELD = "users"

    def __init__(self, store: DataStore):
        self.store = store

    def add_mutation(self, user_id: str, category: Category, title_id: str) -> SetMutation:
        return SetMutation(TITLE_INDEX, index_key(category, title_id), self.FIELD, user_id)

    def remove_mutation(self, user_id: str, category: Category, title_id: str) -> SetMutation:
        return SetMutation(TITLE_INDEX, index_key(category, title_id), self.FIELD, user_id, remove=True)

    async def fans_of(self, category: Category, title_id: str) -> set[str]:
        entry = await self.store.get_title_index(category, title_id)
        return entry.users

    async def count_shared(self, user: User) -> Counter:
        """Number of favorites each other user shares with `user`.

        The user never appears in their own counts.
        """
        counts: Counter = Counter()
        for category, title_id in sorted(user.favorite_keys()):
            for fan in await self.fans_of(category, title_id):
                if fan != user.user_id:
                    counts[fan] += 1
        return counts

    async def rebuild(self) -> dict[str, int]:
        """Repair the index from the users' favorite lists.

        Administrative only. Adds missing memberships and drops members who
        no longer favorite a title that someone still favorites.
        """
        expected: dict[tuple[Category, str], set[str]] = defaultdict(set)
        for user_id in await self.store.list_document_ids(USERS):
            user = await self.store.get_user(user_id)
            if user is None:
                continue
            for key in user.favorite_keys():
                expected[key].add(user_id)

        added = removed = 0
        for (category, title_id), fans in expected.items():
            current = await self.fans_of(category, title_id)
            records = [self.add_mutation(uid, category, title_id) for uid in fans - current]
            records += [self.remove_mutation(uid, category, title_id) for uid in current - fans]
            if records:
                await self.store.transactional_update(records)
            added += len(fans - current)
            removed += len(current - fans)

        logger.info("Index rebuild: %d titles, %d added, %d removed", len(expected), added, removed)
        return {"titles": len(expected), "added": added, "removed": removed}
