"""User profile, preference and quota endpoints."""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from favmatch.api.deps import get_services
from favmatch.models.documents import Gender, MatchGender, MatchLocation, User
from favmatch.services.container import Services

router = APIRouter()


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, max_length=80)
    photo_ref: Optional[str] = None
    gender: Optional[Gender] = None
    match_gender: Optional[MatchGender] = None
    location: Optional[str] = None
    match_location: Optional[MatchLocation] = None


def profile_response(user: User) -> dict:
    return {
        "user_id": user.user_id,
        "display_name": user.display_name,
        "photo_ref": user.photo_ref,
        "gender": user.gender,
        "match_gender": user.match_gender,
        "location": user.location,
        "match_location": user.match_location,
        "favorite_counts": {c.value: len(user.favorites_in(c)) for c in user.favorites},
        "match_count": len(user.matches),
        "created_at": user.created_at,
    }


@router.put("/users/{user_id}")
async def upsert_user(
    user_id: str,
    body: ProfileUpdate,
    services: Services = Depends(get_services),
):
    """Create the user on first call; later calls update the given fields only."""
    user = await services.profiles.upsert_profile(user_id, **body.model_dump(exclude_none=True))
    return profile_response(user)


@router.get("/users/{user_id}")
async def get_user(user_id: str, services: Services = Depends(get_services)):
    return profile_response(await services.profiles.get_profile(user_id))


@router.get("/users/{user_id}/quota")
async def get_quota_status(user_id: str, services: Services = Depends(get_services)):
    """Remaining changes and matches, and cooldown countdown."""
    await services.profiles.get_profile(user_id)
    return asdict(await services.quotas.get_status(user_id))


@router.post("/users/{user_id}/premium")
async def upgrade_to_premium(user_id: str, services: Services = Depends(get_services)):
    await services.profiles.get_profile(user_id)
    await services.quotas.upgrade_to_premium(user_id)
    return asdict(await services.quotas.get_status(user_id))
