"""Compatibility filter: do two users' gender and location preferences agree?"""

from dataclasses import dataclass

from favmatch.models.documents import Gender, MatchGender, MatchLocation, User


@dataclass(frozen=True)
class UserPrefs:
    gender: Gender = Gender.UNSET
    match_gender: MatchGender = MatchGender.EVERYONE
    location: str = ""
    match_location: MatchLocation = MatchLocation.WORLDWIDE

    @classmethod
    def from_user(cls, user: User) -> "UserPrefs":
        return cls(
            gender=user.gender,
            match_gender=user.match_gender,
            location=user.location or "",
            match_location=user.match_location,
        )


def _accepts(seeker: UserPrefs, other_gender: Gender) -> bool:
    if seeker.match_gender == MatchGender.EVERYONE:
        return True
    return seeker.match_gender.value == other_gender.value


def gender_compatible(a: UserPrefs, b: UserPrefs) -> bool:
    # Unknown gender cannot be evaluated, so it never blocks a match
    if a.gender == Gender.UNSET or b.gender == Gender.UNSET:
        return True
    return _accepts(a, b.gender) and _accepts(b, a.gender)


def location_compatible(a: UserPrefs, b: UserPrefs) -> bool:
    if a.match_location == MatchLocation.WORLDWIDE or b.match_location == MatchLocation.WORLDWIDE:
        return True
    return bool(a.location) and bool(b.location) and a.location == b.location


def is_compatible(a: UserPrefs, b: UserPrefs) -> bool:
    """Symmetric: is_compatible(a, b) == is_compatible(b, a) for all inputs."""
    return gender_compatible(a, b) and location_compatible(a, b)
