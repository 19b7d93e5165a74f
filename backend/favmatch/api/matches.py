"""Match listing and search endpoints."""

from dataclasses import asdict

from fastapi import APIRouter, Depends

from favmatch.api.deps import get_services
from favmatch.services.container import Services
from favmatch.services.matching import SearchOutcome

router = APIRouter()


def outcome_response(outcome: SearchOutcome) -> dict:
    return {
        "allowed": outcome.allowed,
        "reason": outcome.reason,
        "new_matches": [asdict(m) for m in outcome.new_matches],
        "remaining": outcome.remaining,
        "cooldown_remaining_seconds": outcome.cooldown_remaining_seconds,
        "deferred": outcome.deferred,
    }


@router.get("/users/{user_id}/matches")
async def list_matches(user_id: str, services: Services = Depends(get_services)):
    """Matches, strongest first."""
    matches = await services.matching.list_matches(user_id)
    return {"matches": [asdict(m) for m in matches], "total": len(matches)}


@router.post("/users/{user_id}/matches/search")
async def search_matches(user_id: str, services: Services = Depends(get_services)):
    """Quota-gated search. A denial is a 200 with allowed=false."""
    return outcome_response(await services.matching.search_matches(user_id))
