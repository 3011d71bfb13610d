"""HTTP-level tests for profiles, events, link-ups and notifications."""

import json
from datetime import timedelta

import pytest

from linkup.models import utcnow


def future(**delta) -> str:
    return (utcnow() + timedelta(**(delta or {"days": 1}))).isoformat()


@pytest.fixture
async def owner(client, auth):
    resp = await client.put(
        "/profiles/me",
        json={
            "display_name": "Olivia",
            "contact_channel": "instagram",
            "contact_value": "@olivia",
            "interest_tags": [" Music ", "Food", "Music", ""],
        },
        headers=auth("owner"),
    )
    assert resp.status_code == 200
    return resp.json()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


class TestAuth:
    async def test_missing_token(self, client):
        resp = await client.get("/profiles/me")
        assert resp.status_code == 401

    async def test_bad_token(self, client):
        resp = await client.get("/profiles/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestProfiles:
    async def test_upsert_cleans_tags(self, owner):
        assert owner["interest_tags"] == ["Music", "Food"]
        assert owner["contact_value"] == "@olivia"
        assert owner["total_ratings"] == 0
        assert owner["average_rating"] is None

    async def test_merge_update_keeps_other_fields(self, client, owner, auth):
        resp = await client.put("/profiles/me", json={"bio": "Coffee nerd"}, headers=auth("owner"))
        data = resp.json()
        assert data["bio"] == "Coffee nerd"
        assert data["display_name"] == "Olivia"
        assert data["interest_tags"] == ["Music", "Food"]

    async def test_public_view_hides_contact(self, client, owner):
        resp = await client.get("/profiles/owner")
        assert resp.status_code == 200
        data = resp.json()
        assert "contact_value" not in data
        assert data["display_name"] == "Olivia"

    async def test_unknown_profile(self, client, auth):
        assert (await client.get("/profiles/ghost")).status_code == 404
        assert (await client.get("/profiles/me", headers=auth("ghost"))).status_code == 404


class TestCreateEvent:
    async def test_create_copies_owner_details(self, client, owner, auth, producer):
        resp = await client.post(
            "/events/",
            json={"place_name": " Blue Bottle Cafe ", "meetup_time": future()},
            headers=auth("owner"),
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["place_name"] == "Blue Bottle Cafe"
        assert data["location_key"] == "Blue Bottle Cafe"
        assert data["owner_display_name"] == "Olivia"
        assert data["interest_tags"] == ["Music", "Food"]
        assert data["max_participants"] == 2
        assert data["current_interested_count"] == 0
        assert data["is_full"] is False

        payload = producer.send_and_wait.await_args.args[1]
        assert payload["type"] == "post_created"
        assert payload["event_post_id"] == data["id"]

    async def test_blank_location_key_falls_back_to_place(self, client, owner, auth):
        resp = await client.post(
            "/events/",
            json={"place_name": "Central Park", "location_key": "   ", "meetup_time": future()},
            headers=auth("owner"),
        )
        assert resp.status_code == 201
        assert resp.json()["location_key"] == "Central Park"

        feed = await client.get("/feed/location", params={"location": "Central Park"})
        assert [p["id"] for p in feed.json()["posts"]] == [resp.json()["id"]]

    async def test_profile_without_interests_is_rejected(self, client, auth):
        await client.put("/profiles/me", json={"display_name": "Newbie"}, headers=auth("newbie"))
        resp = await client.post(
            "/events/",
            json={"place_name": "Cafe", "meetup_time": future()},
            headers=auth("newbie"),
        )
        assert resp.status_code == 422
        assert "interests" in resp.json()["detail"]

    async def test_past_meetup_is_rejected(self, client, owner, auth):
        resp = await client.post(
            "/events/",
            json={"place_name": "Cafe", "meetup_time": future(hours=-1)},
            headers=auth("owner"),
        )
        assert resp.status_code == 422

    async def test_blank_place_is_rejected(self, client, owner, auth):
        resp = await client.post(
            "/events/",
            json={"place_name": "   ", "meetup_time": future()},
            headers=auth("owner"),
        )
        assert resp.status_code == 422

    async def test_zero_capacity_is_rejected(self, client, owner, auth):
        resp = await client.post(
            "/events/",
            json={"place_name": "Cafe", "meetup_time": future(), "max_participants": 0},
            headers=auth("owner"),
        )
        assert resp.status_code == 422

    async def test_unlimited_capacity(self, client, owner, auth):
        resp = await client.post(
            "/events/",
            json={"place_name": "Cafe", "meetup_time": future(), "max_participants": -1},
            headers=auth("owner"),
        )
        assert resp.status_code == 201
        assert resp.json()["max_participants"] == -1


class TestEditEvent:
    async def test_owner_can_edit_and_delete(self, client, auth, make_event):
        event = await make_event("owner")
        resp = await client.patch(
            f"/events/{event.id}", json={"description": "Bring a book"}, headers=auth("owner")
        )
        assert resp.status_code == 200
        assert resp.json()["description"] == "Bring a book"

        resp = await client.delete(f"/events/{event.id}", headers=auth("owner"))
        assert resp.status_code == 204
        assert (await client.get(f"/events/{event.id}")).status_code == 404

    async def test_others_cannot_edit(self, client, auth, make_event):
        event = await make_event("owner")
        resp = await client.patch(
            f"/events/{event.id}", json={"description": "mine now"}, headers=auth("alice")
        )
        assert resp.status_code == 403

    async def test_capacity_cannot_drop_below_joined(self, client, auth, make_event):
        event = await make_event("owner", max_participants=3, current_interested_count=2)
        resp = await client.patch(
            f"/events/{event.id}", json={"max_participants": 1}, headers=auth("owner")
        )
        assert resp.status_code == 422


class TestLinkUpFlow:
    async def test_request_accept_reveals_contact(self, client, owner, auth, make_event, make_profile):
        await make_profile("alice", display_name="Alice")
        event = await make_event("owner", max_participants=2)

        resp = await client.post(f"/events/{event.id}/linkup", headers=auth("alice"))
        assert resp.status_code == 201
        assert resp.json()["status"] == "pending"
        assert resp.json()["contact"] is None

        # Asking again is a no-op that reports the unchanged state
        resp = await client.post(f"/events/{event.id}/linkup", headers=auth("alice"))
        assert resp.status_code == 200
        assert resp.json()["status"] == "pending"

        resp = await client.get("/linkups/incoming", headers=auth("owner"))
        incoming = resp.json()
        assert len(incoming) == 1
        assert incoming[0]["from_display_name"] == "Alice"
        request_id = incoming[0]["id"]

        resp = await client.post(
            f"/linkups/{request_id}/decision", json={"decision": "accepted"}, headers=auth("alice")
        )
        assert resp.status_code == 403

        resp = await client.post(
            f"/linkups/{request_id}/decision", json={"decision": "accepted"}, headers=auth("owner")
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "accepted"

        resp = await client.get(f"/events/{event.id}/linkup", headers=auth("alice"))
        assert resp.json()["contact"] == {"channel": "instagram", "value": "@olivia"}

        resp = await client.post(
            f"/linkups/{request_id}/decision", json={"decision": "declined"}, headers=auth("owner")
        )
        assert resp.status_code == 409

        resp = await client.get(f"/events/{event.id}")
        assert resp.json()["current_interested_count"] == 1

    async def test_bad_decision_value(self, client, auth):
        resp = await client.post(
            "/linkups/anything/decision", json={"decision": "maybe"}, headers=auth("owner")
        )
        assert resp.status_code == 422

    async def test_my_events(self, client, owner, auth, make_event, make_profile):
        await make_profile("alice", display_name="Alice", contact_value="+1-555-0111")
        upcoming = await make_event("owner")
        await make_event("owner", meetup_time=utcnow() - timedelta(days=1))
        joined = await make_event("bob")

        resp = await client.post(f"/events/{upcoming.id}/linkup", headers=auth("alice"))
        request_id = resp.json()["request_id"]
        await client.post(
            f"/linkups/{request_id}/decision", json={"decision": "accepted"}, headers=auth("owner")
        )
        resp = await client.post(f"/events/{joined.id}/linkup", headers=auth("owner"))
        request_id = resp.json()["request_id"]
        await client.post(
            f"/linkups/{request_id}/decision", json={"decision": "accepted"}, headers=auth("bob")
        )

        resp = await client.get("/events/mine", headers=auth("owner"))
        data = resp.json()
        assert {e["id"] for e in data["upcoming"]} == {upcoming.id, joined.id}
        assert len(data["past"]) == 1

        mine = next(e for e in data["upcoming"] if e["id"] == upcoming.id)
        assert mine["is_owner"] is True
        assert mine["participants"] == [
            {
                "user_id": "alice",
                "display_name": "Alice",
                "contact_channel": "phone",
                "contact_value": "+1-555-0111",
            }
        ]
        theirs = next(e for e in data["upcoming"] if e["id"] == joined.id)
        assert theirs["is_owner"] is False
        assert theirs["participants"] == []


class TestNotifications:
    async def test_newest_first(self, client, redis, auth):
        for ts, title in [(100.0, "older"), (200.0, "newer")]:
            item = {"type": "linkup_requested", "title": title, "body": "", "ts": ts, "data": {}}
            await redis.zadd("notifications:owner", {json.dumps(item): ts})

        resp = await client.get("/notifications/", headers=auth("owner"))
        assert resp.status_code == 200
        assert [n["title"] for n in resp.json()] == ["newer", "older"]

    async def test_empty_mailbox(self, client, auth):
        resp = await client.get("/notifications/", headers=auth("nobody"))
        assert resp.json() == []
