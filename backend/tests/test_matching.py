"""Matching engine: discovery, thresholds, quota gating, bidirectionality."""

import pytest

from conftest import seed_quota, seed_user
from favmatch.errors import UserNotFoundError
from favmatch.models.documents import Category, FavoriteTitle, Gender, MatchGender, User
from favmatch.services.quota import DenyReason, UsageQuota

ANIME = Category.ANIME
DRAMA = Category.DRAMA


async def test_shared_favorites_create_one_match_on_both_sides(services, store):
    await seed_user(store, "alice", {ANIME: ["1", "2", "3"]})
    await seed_user(store, "bob", {ANIME: ["1", "2", "3"]})

    outcome = await services.matching.search_matches("alice")

    assert outcome.allowed
    assert [m.user_id for m in outcome.new_matches] == ["bob"]
    assert outcome.new_matches[0].match_strength == 3

    alice = await store.get_user("alice")
    bob = await store.get_user("bob")
    assert alice.matches == ["bob"]
    assert bob.matches == ["alice"]
    assert bob.matches_data["alice"].display_name == "Alice"

    assert (await services.quotas.get_quota("alice")).match_count == 1
    assert (await services.quotas.get_quota("bob")).match_count == 1


async def test_categories_count_together(services, store):
    await seed_user(store, "alice", {ANIME: ["1", "2"], DRAMA: ["7"]})
    await seed_user(store, "bob", {ANIME: ["1", "2"], DRAMA: ["7"]})

    outcome = await services.matching.search_matches("alice")
    assert [m.user_id for m in outcome.new_matches] == ["bob"]


async def test_two_shared_titles_is_below_threshold(services, store):
    await seed_user(store, "alice", {ANIME: ["1", "2", "3"]})
    await seed_user(store, "bob", {ANIME: ["1", "2", "9"]})

    outcome = await services.matching.search_matches("alice")
    assert outcome.allowed
    assert outcome.new_matches == []
    assert (await store.get_user("alice")).matches == []


async def test_candidate_in_cooldown_is_skipped(services, store, clock):
    await seed_user(store, "alice", {ANIME: ["1", "2", "3"]})
    await seed_user(store, "bob", {ANIME: ["1", "2", "3"]})
    await seed_quota(store, UsageQuota(
        user_id="bob", match_count=2, cooldown_started_at=clock.now,
        available_for_matching=False, last_reset_at=clock.now,
    ))

    outcome = await services.matching.search_matches("alice")
    assert outcome.new_matches == []
    assert (await store.get_user("bob")).matches == []

    # Once bob's cooldown has passed the same search finds him
    clock.advance(120)
    outcome = await services.matching.search_matches("alice")
    assert [m.user_id for m in outcome.new_matches] == ["bob"]


async def test_searcher_in_cooldown_is_denied(services, store, clock):
    await seed_user(store, "alice", {ANIME: ["1", "2", "3"]})
    await seed_user(store, "bob", {ANIME: ["1", "2", "3"]})
    await seed_quota(store, UsageQuota(
        user_id="alice", match_count=2, cooldown_started_at=clock.now,
        available_for_matching=False, last_reset_at=clock.now,
    ))
    clock.advance(20)

    outcome = await services.matching.search_matches("alice")
    assert not outcome.allowed
    assert outcome.reason == DenyReason.COOLDOWN
    assert outcome.cooldown_remaining_seconds == 100


async def test_incompatible_users_are_not_matched(services, store):
    await seed_user(store, "alice", {ANIME: ["1", "2", "3"]}, gender=Gender.FEMALE, match_gender=MatchGender.FEMALE)
    await seed_user(store, "bob", {ANIME: ["1", "2", "3"]}, gender=Gender.MALE)

    outcome = await services.matching.search_matches("alice")
    assert outcome.new_matches == []


async def test_search_is_capped_at_remaining_allowance(services, store):
    shows = ["1", "2", "3", "4"]
    await seed_user(store, "alice", {ANIME: shows})
    await seed_user(store, "bob", {ANIME: shows})
    await seed_user(store, "carol", {ANIME: shows[:3]})
    await seed_user(store, "dave", {ANIME: shows[:3]})

    outcome = await services.matching.search_matches("alice")

    # Strongest first, then by id; two allowed before the cooldown
    assert [m.user_id for m in outcome.new_matches] == ["bob", "carol"]
    assert outcome.deferred == 1
    assert outcome.remaining == 0
    assert (await store.get_user("dave")).matches == []


async def test_repeat_search_is_idempotent(services, store):
    await seed_user(store, "alice", {ANIME: ["1", "2", "3"]})
    await seed_user(store, "bob", {ANIME: ["1", "2", "3"]})

    await services.matching.search_matches("alice")
    again = await services.matching.search_matches("alice")
    from_bob = await services.matching.search_matches("bob")

    assert again.new_matches == []
    assert from_bob.new_matches == []
    assert (await store.get_user("alice")).matches == ["bob"]
    assert (await store.get_user("bob")).matches == ["alice"]
    assert (await services.quotas.get_quota("alice")).match_count == 1


async def test_premium_search_is_unlimited(services, store):
    shows = ["1", "2", "3"]
    await seed_user(store, "alice", {ANIME: shows})
    for name in ["bob", "carol", "dave"]:
        await seed_user(store, name, {ANIME: shows})
    await services.quotas.upgrade_to_premium("alice")

    outcome = await services.matching.search_matches("alice")
    assert len(outcome.new_matches) == 3
    assert outcome.remaining is None
    assert (await services.quotas.get_quota("alice")).match_count == 0


async def test_list_matches_strongest_first(services, store):
    await seed_user(store, "alice", {ANIME: ["1", "2", "3", "4"]})
    await seed_user(store, "bob", {ANIME: ["1", "2", "3"]})
    await seed_user(store, "carol", {ANIME: ["1", "2", "3", "4"]})
    await services.quotas.upgrade_to_premium("alice")

    await services.matching.search_matches("alice")
    matches = await services.matching.list_matches("alice")
    assert [(m.user_id, m.match_strength) for m in matches] == [("carol", 4), ("bob", 3)]


async def test_match_strength_follows_current_favorites(services, store):
    await seed_user(store, "alice", {ANIME: ["1", "2", "3", "4"]})
    await seed_user(store, "bob", {ANIME: ["1", "2", "3", "4"]})
    await services.matching.search_matches("alice")

    # Removing a shared title keeps the match but lowers its strength on both sides
    result = await services.favorites.remove_favorite("alice", ANIME, "4")
    assert result.success
    assert result.matches.refreshed == 1

    alice = await store.get_user("alice")
    bob = await store.get_user("bob")
    assert alice.matches_data["bob"].match_strength == 3
    assert bob.matches_data["alice"].match_strength == 3


async def test_recompute_in_cooldown_creates_nothing(services, store, clock):
    await seed_user(store, "alice", {ANIME: ["1", "2", "3"]})
    await seed_user(store, "bob", {ANIME: ["1", "2", "3"]})
    await seed_quota(store, UsageQuota(
        user_id="alice", changes_this_week=2, cooldown_started_at=clock.now,
        available_for_matching=False, last_reset_at=clock.now,
    ))

    outcome = await services.matching.recompute_matches("alice")
    assert outcome.new_matches == []
    assert outcome.deferred == 1


async def test_unknown_user_search_raises(services):
    with pytest.raises(UserNotFoundError):
        await services.matching.search_matches("nobody")


async def test_passive_matching_stops_at_own_cooldown(services, store):
    await seed_user(store, "alice", {ANIME: ["1", "2"]})
    for name in ["bob", "carol", "dave", "erin"]:
        await seed_user(store, name, {ANIME: ["1", "2", "3"]})

    result = await services.favorites.add_favorite("alice", ANIME, FavoriteTitle("3"))

    assert [m.user_id for m in result.matches.new_matches] == ["bob", "carol"]
    assert result.matches.deferred == 2
    alice = await store.get_user("alice")
    assert alice.matches == ["bob", "carol"]
    quota = await services.quotas.get_quota("alice")
    assert quota.match_count == 2
    assert not quota.available_for_matching
    assert (await store.get_user("dave")).matches == []
    assert (await store.get_user("erin")).matches == []


async def test_match_with_vanished_partner_writes_neither_side(services, store):
    alice = await seed_user(store, "alice", {ANIME: ["1", "2", "3"]})
    ghost = User(user_id="ghost", display_name="Ghost")

    assert await services.matching._create_match(alice, ghost, 3) is None
    assert (await store.get_user("alice")).matches == []
    assert await store.get_user("ghost") is None


async def test_male_seeking_female_matches_female_seeking_male(services, store):
    shows = {ANIME: ["1", "2", "3"]}
    await seed_user(store, "a", shows, gender=Gender.MALE, match_gender=MatchGender.FEMALE, location="")
    await seed_user(store, "b", shows, gender=Gender.FEMALE, match_gender=MatchGender.MALE)

    outcome = await services.matching.search_matches("a")

    assert [m.user_id for m in outcome.new_matches] == ["b"]
    assert (await store.get_user("a")).matches == ["b"]
    assert (await store.get_user("b")).matches == ["a"]
    assert (await services.quotas.get_quota("a")).match_count == 1
    assert (await services.quotas.get_quota("b")).match_count == 1


async def test_same_pair_with_partner_unavailable_yields_nothing(services, store, clock):
    shows = {ANIME: ["1", "2", "3"]}
    await seed_user(store, "a", shows, gender=Gender.MALE, match_gender=MatchGender.FEMALE, location="")
    await seed_user(store, "b", shows, gender=Gender.FEMALE, match_gender=MatchGender.MALE)
    await seed_quota(store, UsageQuota(
        user_id="b", match_count=2, cooldown_started_at=clock.now,
        available_for_matching=False, last_reset_at=clock.now,
    ))

    outcome = await services.matching.search_matches("a")

    assert outcome.allowed
    assert outcome.new_matches == []
    assert (await store.get_user("a")).matches == []
    assert (await store.get_user("b")).matches == []
    assert (await services.quotas.get_quota("a")).match_count == 0
