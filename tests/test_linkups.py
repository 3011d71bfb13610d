"""Tests for the link-up request engine."""

import pytest
from sqlalchemy import func, select

from linkup import linkups
from linkup.auth import Principal
from linkup.config import settings
from linkup.errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from linkup.models import ACCEPTED, DECLINED, PENDING, UNLIMITED, LinkUpRequest

OWNER = Principal("owner", "Olivia")
ALICE = Principal("alice", "Alice")
BOB = Principal("bob", "Bob")


@pytest.fixture
async def event(make_profile, make_event):
    await make_profile("owner", display_name="Olivia", contact_value="+1-555-0100")
    await make_profile("alice")
    await make_profile("bob")
    return await make_event("owner", max_participants=2)


async def _count(db, event_id):
    await db.commit()
    rows = await db.execute(
        select(func.count()).select_from(LinkUpRequest).where(LinkUpRequest.event_post_id == event_id)
    )
    return rows.scalar_one()


class TestRequestAndDecide:
    async def test_accept_then_decline_scenario(self, db, event):
        req = await linkups.request_link_up(db, ALICE, event.id)
        assert req.status == PENDING
        assert req.to_user_id == "owner"

        status = await linkups.link_up_status(db, ALICE, event.id)
        assert status.status == "pending"
        assert status.contact is None

        await linkups.decide(db, OWNER, req.id, ACCEPTED)
        assert event.current_interested_count == 1

        status = await linkups.link_up_status(db, ALICE, event.id)
        assert status.status == "accepted"
        assert status.contact.channel == "phone"
        assert status.contact.value == "+1-555-0100"

        bob_req = await linkups.request_link_up(db, BOB, event.id)
        decided = await linkups.decide(db, OWNER, bob_req.id, DECLINED)
        assert decided.status == DECLINED
        assert decided.decided_at is not None
        assert event.current_interested_count == 1

        bob_status = await linkups.link_up_status(db, BOB, event.id)
        assert bob_status.status == "declined"
        assert bob_status.contact is None

    async def test_status_is_none_before_any_request(self, db, event):
        status = await linkups.link_up_status(db, ALICE, event.id)
        assert status.status == "none"
        assert status.request_id is None
        assert status.is_full is False

    async def test_request_publishes_event_and_change(self, db, event, producer, redis):
        pubsub = redis.pubsub()
        await pubsub.subscribe("linkups:owner")
        await pubsub.get_message(timeout=0.1)

        await linkups.request_link_up(db, ALICE, event.id)

        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
        assert message is not None
        await pubsub.aclose()

        topic, payload = producer.send_and_wait.await_args.args
        assert topic == settings.kafka_topic_events
        assert payload["type"] == "linkup_requested"
        assert payload["to_user_id"] == "owner"
        assert payload["from_user_id"] == "alice"


class TestRequestNoOps:
    async def test_own_event_is_ignored(self, db, event):
        assert await linkups.request_link_up(db, OWNER, event.id) is None
        assert await _count(db, event.id) == 0

    async def test_full_event_is_ignored(self, db, make_event):
        full = await make_event("owner", max_participants=1, current_interested_count=1)
        assert full.is_full
        assert await linkups.request_link_up(db, ALICE, full.id) is None
        assert await _count(db, full.id) == 0

    async def test_unlimited_event_is_never_full(self, db, make_event):
        open_event = await make_event("owner", max_participants=UNLIMITED, current_interested_count=40)
        assert not open_event.is_full
        assert await linkups.request_link_up(db, ALICE, open_event.id) is not None

    async def test_duplicate_request_is_ignored(self, db, event):
        first = await linkups.request_link_up(db, ALICE, event.id)
        assert first is not None
        assert await linkups.request_link_up(db, ALICE, event.id) is None
        assert await _count(db, event.id) == 1

    async def test_declined_requester_cannot_ask_again(self, db, event):
        req = await linkups.request_link_up(db, ALICE, event.id)
        await linkups.decide(db, OWNER, req.id, DECLINED)
        assert await linkups.request_link_up(db, ALICE, event.id) is None

    async def test_unknown_event(self, db, event):
        with pytest.raises(NotFound):
            await linkups.request_link_up(db, ALICE, "missing")

    async def test_interleaved_requests_can_both_land(self, db, event):
        # Check-then-write is not atomic: two requests that both pass the
        # check before either writes end up as two pending rows.
        assert await linkups.current_request(db, "alice", event.id) is None
        assert await linkups.current_request(db, "alice", event.id) is None
        await linkups.insert_request(db, "alice", event)
        await linkups.insert_request(db, "alice", event)

        rows = await db.execute(
            select(LinkUpRequest.status).where(LinkUpRequest.event_post_id == event.id)
        )
        assert rows.scalars().all() == [PENDING, PENDING]


class TestDecideErrors:
    async def test_only_owner_may_decide(self, db, event):
        req = await linkups.request_link_up(db, ALICE, event.id)
        with pytest.raises(Forbidden):
            await linkups.decide(db, BOB, req.id, ACCEPTED)

    async def test_decision_is_one_way(self, db, event):
        req = await linkups.request_link_up(db, ALICE, event.id)
        await linkups.decide(db, OWNER, req.id, DECLINED)
        with pytest.raises(InvalidTransition):
            await linkups.decide(db, OWNER, req.id, ACCEPTED)
        assert event.current_interested_count == 0

    async def test_accept_twice_counts_once(self, db, event):
        req = await linkups.request_link_up(db, ALICE, event.id)
        await linkups.decide(db, OWNER, req.id, ACCEPTED)
        with pytest.raises(InvalidTransition):
            await linkups.decide(db, OWNER, req.id, ACCEPTED)
        assert event.current_interested_count == 1

    async def test_unknown_request(self, db, event):
        with pytest.raises(NotFound):
            await linkups.decide(db, OWNER, "missing", ACCEPTED)

    async def test_unknown_decision(self, db, event):
        req = await linkups.request_link_up(db, ALICE, event.id)
        with pytest.raises(ValidationFailed):
            await linkups.decide(db, OWNER, req.id, "maybe")


class TestCapacity:
    async def test_accepts_can_overshoot_by_default(self, db, make_event):
        event = await make_event("owner", max_participants=1)
        event_id = event.id
        alice_req = await linkups.request_link_up(db, ALICE, event_id)
        bob_req = await linkups.request_link_up(db, BOB, event_id)

        await linkups.decide(db, OWNER, alice_req.id, ACCEPTED)
        await linkups.decide(db, OWNER, bob_req.id, ACCEPTED)

        refreshed = await linkups.get_event(db, event_id)
        assert refreshed.current_interested_count == 2
        assert refreshed.is_full

    async def test_strict_capacity_rejects_accept_past_max(self, db, make_event, monkeypatch):
        monkeypatch.setattr(settings, "strict_capacity", True)
        event = await make_event("owner", max_participants=1)
        event_id = event.id
        alice_req = await linkups.request_link_up(db, ALICE, event_id)
        bob_req = await linkups.request_link_up(db, BOB, event_id)
        bob_req_id = bob_req.id

        await linkups.decide(db, OWNER, alice_req.id, ACCEPTED)
        with pytest.raises(InvalidTransition):
            await linkups.decide(db, OWNER, bob_req_id, ACCEPTED)

        bob_row = await db.get(LinkUpRequest, bob_req_id)
        await db.refresh(bob_row)
        assert bob_row.status == PENDING
        refreshed = await linkups.get_event(db, event_id)
        await db.refresh(refreshed)
        assert refreshed.current_interested_count == 1


class TestIncoming:
    async def test_pending_requests_with_context(self, db, event, make_event):
        other = await make_event("owner", place_name="Central Park")
        await linkups.request_link_up(db, ALICE, event.id)
        stranger = Principal("stranger")
        await linkups.request_link_up(db, stranger, other.id)

        incoming = await linkups.incoming_requests(db, "owner")
        assert len(incoming) == 2
        names = {r.from_user_id: r.from_display_name for r in incoming}
        assert names == {"alice": "Alice", "stranger": "Unknown User"}
        places = {r.from_user_id: r.event.place_name for r in incoming}
        assert places["stranger"] == "Central Park"

    async def test_decided_requests_leave_the_inbox(self, db, event):
        req = await linkups.request_link_up(db, ALICE, event.id)
        await linkups.decide(db, OWNER, req.id, ACCEPTED)
        assert await linkups.incoming_requests(db, "owner") == []


class TestInterest:
    async def test_interest_counts_once(self, db, event):
        first = await linkups.express_interest(db, ALICE, event.id)
        assert first.interested
        assert first.current_interested_count == 1

        again = await linkups.express_interest(db, ALICE, event.id)
        assert again.interested
        assert again.current_interested_count == 1

    async def test_owner_interest_is_ignored(self, db, event):
        result = await linkups.express_interest(db, OWNER, event.id)
        assert not result.interested
        assert result.current_interested_count == 0
