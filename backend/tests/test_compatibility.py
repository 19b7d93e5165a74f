import itertools

import pytest

from favmatch.models.documents import Gender, MatchGender, MatchLocation
from favmatch.services.compatibility import UserPrefs, gender_compatible, is_compatible, location_compatible

LOCATIONS = ["", "tokyo", "osaka"]

ALL_PREFS = [
    UserPrefs(gender=g, match_gender=mg, location=loc, match_location=ml)
    for g, mg, loc, ml in itertools.product(Gender, MatchGender, LOCATIONS, MatchLocation)
]


def test_compatibility_is_symmetric():
    for a, b in itertools.product(ALL_PREFS, repeat=2):
        assert is_compatible(a, b) == is_compatible(b, a), (a, b)


@pytest.mark.parametrize("a_seeks, b_seeks, expected", [
    (MatchGender.FEMALE, MatchGender.MALE, True),
    (MatchGender.EVERYONE, MatchGender.EVERYONE, True),
    (MatchGender.MALE, MatchGender.MALE, False),       # b is female
    (MatchGender.FEMALE, MatchGender.FEMALE, False),   # a is male
])
def test_gender_requires_both_sides_to_accept(a_seeks, b_seeks, expected):
    a = UserPrefs(gender=Gender.MALE, match_gender=a_seeks)
    b = UserPrefs(gender=Gender.FEMALE, match_gender=b_seeks)
    assert gender_compatible(a, b) is expected


def test_unset_gender_never_blocks():
    a = UserPrefs(gender=Gender.UNSET, match_gender=MatchGender.MALE)
    b = UserPrefs(gender=Gender.FEMALE, match_gender=MatchGender.FEMALE)
    assert gender_compatible(a, b)


def test_local_matching_needs_same_known_location():
    tokyo = UserPrefs(location="tokyo", match_location=MatchLocation.LOCAL)
    osaka = UserPrefs(location="osaka", match_location=MatchLocation.LOCAL)
    nowhere = UserPrefs(location="", match_location=MatchLocation.LOCAL)

    assert location_compatible(tokyo, UserPrefs(location="tokyo", match_location=MatchLocation.LOCAL))
    assert not location_compatible(tokyo, osaka)
    assert not location_compatible(nowhere, UserPrefs(location="", match_location=MatchLocation.LOCAL))


def test_worldwide_on_either_side_accepts():
    local = UserPrefs(location="tokyo", match_location=MatchLocation.LOCAL)
    worldwide = UserPrefs(location="osaka", match_location=MatchLocation.WORLDWIDE)
    assert location_compatible(local, worldwide)
    assert location_compatible(worldwide, local)
