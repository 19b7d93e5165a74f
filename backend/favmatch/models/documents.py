"""Document shapes stored in the `users` collection and their enums.

Documents are plain JSON dicts in the store; these dataclasses are the typed
view the services work with.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


# ── Collections ──────────────────────────────────────────────────

USERS = "users"
QUOTAS = "quotas"
TITLE_INDEX = "title_index"


# ── Enums ────────────────────────────────────────────────────────

class Category(str, Enum):
    ANIME = "anime"
    DRAMA = "drama"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    UNSET = "unset"


class MatchGender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    EVERYONE = "everyone"


class MatchLocation(str, Enum):
    LOCAL = "local"
    WORLDWIDE = "worldwide"


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def index_key(category: Category, title_id: str) -> str:
    """Document id of a title's entry in the title index."""
    return f"{Category(category).value}:{title_id}"


# ── Favorites ────────────────────────────────────────────────────

@dataclass
class FavoriteTitle:
    """A favorited title with the display metadata cached at add time."""
    title_id: str
    title: str = ""
    image_url: str = ""
    added_at: Optional[datetime] = None

    def to_document(self) -> dict:
        return {
            "title": self.title,
            "image_url": self.image_url,
            "added_at": to_iso(self.added_at),
        }

    @classmethod
    def from_document(cls, title_id: str, data: dict) -> "FavoriteTitle":
        return cls(
            title_id=title_id,
            title=data.get("title", ""),
            image_url=data.get("image_url", ""),
            added_at=from_iso(data.get("added_at")),
        )


# ── Matches ──────────────────────────────────────────────────────

@dataclass
class MatchInfo:
    """One side's copy of a match: who, how they look, how strong."""
    user_id: str
    display_name: str = ""
    photo_ref: str = ""
    match_strength: int = 0         # shared favorite titles at last recompute
    matched_at: Optional[datetime] = None

    def to_document(self) -> dict:
        return {
            "display_name": self.display_name,
            "photo_ref": self.photo_ref,
            "match_strength": self.match_strength,
            "matched_at": to_iso(self.matched_at),
        }

    @classmethod
    def from_document(cls, user_id: str, data: dict) -> "MatchInfo":
        return cls(
            user_id=user_id,
            display_name=data.get("display_name", ""),
            photo_ref=data.get("photo_ref", ""),
            match_strength=int(data.get("match_strength", 0)),
            matched_at=from_iso(data.get("matched_at")),
        )


# ── Users ────────────────────────────────────────────────────────

@dataclass
class User:
    user_id: str
    display_name: str = ""
    photo_ref: str = ""
    gender: Gender = Gender.UNSET
    match_gender: MatchGender = MatchGender.EVERYONE
    location: str = ""
    match_location: MatchLocation = MatchLocation.WORLDWIDE
    favorites: dict[Category, dict[str, FavoriteTitle]] = field(default_factory=dict)
    matches: list[str] = field(default_factory=list)
    matches_data: dict[str, MatchInfo] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def favorites_in(self, category: Category) -> dict[str, FavoriteTitle]:
        return self.favorites.get(Category(category), {})

    def favorite_keys(self) -> set[tuple[Category, str]]:
        """Every (category, title_id) pair the user has favorited."""
        return {
            (category, title_id)
            for category, titles in self.favorites.items()
            for title_id in titles
        }

    def has_favorite(self, category: Category, title_id: str) -> bool:
        return title_id in self.favorites_in(category)

    def is_matched_with(self, other_id: str) -> bool:
        return other_id in self.matches

    def match_info(self, strength: int, matched_at: datetime) -> MatchInfo:
        """The MatchInfo another user stores about this user."""
        return MatchInfo(
            user_id=self.user_id,
            display_name=self.display_name or "User",
            photo_ref=self.photo_ref,
            match_strength=strength,
            matched_at=matched_at,
        )

    def to_document(self) -> dict:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "photo_ref": self.photo_ref,
            "gender": self.gender.value,
            "match_gender": self.match_gender.value,
            "location": self.location,
            "match_location": self.match_location.value,
            "favorites": {
                category.value: {tid: fav.to_document() for tid, fav in titles.items()}
                for category, titles in self.favorites.items()
            },
            "matches": list(self.matches),
            "matches_data": {uid: info.to_document() for uid, info in self.matches_data.items()},
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_document(cls, data: dict) -> "User":
        favorites = {
            Category(category): {
                tid: FavoriteTitle.from_document(tid, fav) for tid, fav in titles.items()
            }
            for category, titles in (data.get("favorites") or {}).items()
        }
        return cls(
            user_id=data["user_id"],
            display_name=data.get("display_name", ""),
            photo_ref=data.get("photo_ref", ""),
            gender=Gender(data.get("gender") or Gender.UNSET),
            match_gender=MatchGender(data.get("match_gender") or MatchGender.EVERYONE),
            location=data.get("location") or "",
            match_location=MatchLocation(data.get("match_location") or MatchLocation.WORLDWIDE),
            favorites=favorites,
            matches=list(data.get("matches") or []),
            matches_data={
                uid: MatchInfo.from_document(uid, info)
                for uid, info in (data.get("matches_data") or {}).items()
            },
            created_at=from_iso(data.get("created_at")),
        )
