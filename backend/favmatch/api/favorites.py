"""Favorite list endpoints."""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from favmatch.api.deps import get_services
from favmatch.api.matches import outcome_response
from favmatch.models.documents import Category, FavoriteTitle
from favmatch.services.container import Services
from favmatch.services.favorites import FavoriteResult

router = APIRouter()


class FavoriteCreate(BaseModel):
    title_id: str = Field(..., min_length=1, max_length=64)
    title: str = ""            # resolved from the catalog when empty
    image_url: str = ""


def result_response(result: FavoriteResult) -> dict:
    body = {
        "success": result.success,
        "reason": result.reason,
        "favorites": [asdict(t) for t in result.favorites],
        "matches": outcome_response(result.matches) if result.matches else None,
    }
    if result.decision is not None:
        body["remaining"] = result.decision.remaining
        body["cooldown_remaining_seconds"] = result.decision.cooldown_remaining_seconds
    return body


@router.get("/users/{user_id}/favorites")
async def list_favorites(
    user_id: str,
    category: Optional[Category] = None,
    services: Services = Depends(get_services),
):
    favorites = await services.favorites.list_favorites(user_id)
    if category is not None:
        favorites = {category: favorites[category]}
    return {c.value: [asdict(t) for t in titles] for c, titles in favorites.items()}


@router.post("/users/{user_id}/favorites/{category}")
async def add_favorite(
    user_id: str,
    category: Category,
    body: FavoriteCreate,
    services: Services = Depends(get_services),
):
    """Add a title. Free, bounded by the tier's list capacity."""
    title = FavoriteTitle(title_id=body.title_id, title=body.title, image_url=body.image_url)
    result = await services.favorites.add_favorite(user_id, category, title)
    return result_response(result)


@router.delete("/users/{user_id}/favorites/{category}/{title_id}")
async def remove_favorite(
    user_id: str,
    category: Category,
    title_id: str,
    services: Services = Depends(get_services),
):
    """Remove a title. Costs one weekly change; denials come back as success=false."""
    result = await services.favorites.remove_favorite(user_id, category, title_id)
    return result_response(result)
