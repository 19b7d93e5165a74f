"""Profiles: creating users and editing their matching preferences."""

import logging
from dataclasses import replace
from typing import Optional

from favmatch.errors import UserNotFoundError
from favmatch.models.documents import USERS, Gender, MatchGender, MatchLocation, User
from favmatch.services.quota_service import QuotaService
from favmatch.store.base import DataStore, DocumentMutation

logger = logging.getLogger(__name__)


class ProfileService:

    def __init__(self, store: DataStore, quotas: QuotaService):
        self.store = store
        self.quotas = quotas

    async def get_profile(self, user_id: str) -> User:
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def upsert_profile(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        photo_ref: Optional[str] = None,
        gender: Optional[Gender] = None,
        match_gender: Optional[MatchGender] = None,
        location: Optional[str] = None,
        match_location: Optional[MatchLocation] = None,
    ) -> User:
        """Create the user on first call, otherwise update the given fields.

        Favorites and matches are never touched here.
        """
        changes = {
            key: value for key, value in {
                "display_name": display_name,
                "photo_ref": photo_ref,
                "gender": gender,
                "match_gender": match_gender,
                "location": location,
                "match_location": match_location,
            }.items()
            if value is not None
        }
        box: dict[str, User] = {}

        def build(now):
            def mutate(data: Optional[dict]) -> Optional[dict]:
                if data is None:
                    user = User(user_id=user_id, created_at=now)
                    logger.info("Creating profile for %s", user_id)
                else:
                    user = User.from_document(data)
                user = replace(user, **changes)
                box["user"] = user
                return user.to_document()
            return [DocumentMutation(USERS, user_id, mutate)]

        await self.quotas.run_atomic(build, f"update profile of {user_id}")
        # First access creates the default quota record
        await self.quotas.refresh(user_id)
        return box["user"]
