"""Tests for recommended posts."""

from datetime import timedelta

import pytest

from linkup.auth import Principal
from linkup.models import utcnow
from linkup.recommendations import rank_by_overlap, recommend, viewer_interests


@pytest.fixture
async def posts(make_event):
    now = utcnow()
    return {
        "music_art": await make_event("a", interest_tags=["Music", "Art"], meetup_time=now + timedelta(days=1)),
        "sports_music": await make_event("b", interest_tags=["Sports", "Music"], meetup_time=now + timedelta(days=2)),
        "art": await make_event("c", interest_tags=["Art"], meetup_time=now + timedelta(days=3)),
        "food": await make_event("d", interest_tags=["Food"], meetup_time=now + timedelta(days=4)),
        "past_music": await make_event("e", interest_tags=["Music"], meetup_time=now - timedelta(hours=1)),
    }


async def test_anonymous_viewer_gets_popular_interests(db, posts):
    result = await recommend(db, None)
    assert not result.personalised
    assert result.interests == ["Sports", "Music", "Food", "Movies", "Gaming"]

    ids = [p.id for p in result.posts]
    # Two shared tags first; the one-tag ties keep their soonest-first order
    assert ids == [posts["sports_music"].id, posts["music_art"].id, posts["food"].id]
    assert [p.match_count for p in result.posts] == [2, 1, 1]


async def test_zero_overlap_and_past_posts_are_dropped(db, posts):
    result = await recommend(db, None)
    ids = {p.id for p in result.posts}
    assert posts["art"].id not in ids
    assert posts["past_music"].id not in ids


async def test_personalised_by_profile_interests(db, posts, make_profile):
    await make_profile("viewer", interest_tags=["Art"])
    result = await recommend(db, Principal("viewer"))
    assert result.personalised
    assert [p.id for p in result.posts] == [posts["music_art"].id, posts["art"].id]


async def test_viewer_without_interests_falls_back(db, make_profile):
    await make_profile("blank", interest_tags=[])
    interests, personalised = await viewer_interests(db, Principal("blank"))
    assert not personalised
    assert interests[0] == "Sports"


def test_rank_is_stable_for_ties():
    class P:
        def __init__(self, name, tags):
            self.name = name
            self.interest_tags = tags

    ranked = rank_by_overlap(
        [P("first", ["Music"]), P("second", ["Food"]), P("none", ["Chess"]), P("third", ["Music"])],
        ["Music", "Food"],
    )
    assert [p.name for p, _ in ranked] == ["first", "second", "third"]


async def test_recommended_over_http(client, posts, auth, make_profile):
    await make_profile("viewer", interest_tags=["Food"])
    resp = await client.get("/feed/recommended", headers=auth("viewer"))
    assert resp.status_code == 200
    data = resp.json()
    assert data["personalised"] is True
    assert [p["id"] for p in data["posts"]] == [posts["food"].id]

    resp = await client.get("/feed/recommended")
    assert resp.json()["personalised"] is False
