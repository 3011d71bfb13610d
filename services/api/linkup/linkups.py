"""
Link-Up Request Engine.

    none ──request()──▶ pending ──decide()──▶ accepted | declined

request() is a silent no-op when the requester owns the event, the event is
full, or the requester already has a request for it. Uniqueness is checked by
query-before-write only: two interleaved requests from the same user can both
land as pending.

decide() is owner-only and one-way. Accepting increments the event's
interested counter in the same transaction as the status change; the counter
is not capacity-guarded unless settings.strict_capacity is on, so racing
accepts can overshoot max_participants.

The owner's contact details are revealed to the requester only once the
request is accepted.
"""
import logging
from typing import Optional

from opentelemetry import trace
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from linkup.announce import announce
from linkup.auth import Principal
from linkup.clients.redis_client import incoming_channel, location_channel
from linkup.config import settings
from linkup.errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from linkup.models import (
    ACCEPTED,
    DECLINED,
    PENDING,
    UNLIMITED,
    EventPost,
    LinkUpRequest,
    PostInterest,
    UserProfile,
    utcnow,
)
from linkup.schemas import (
    ContactInfo,
    EventPostResponse,
    IncomingRequest,
    InterestResponse,
    LinkUpStatusResponse,
)
from linkup.telemetry import LINKUP_DECISIONS_TOTAL, LINKUP_REQUESTS_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def get_event(db: AsyncSession, event_post_id: str) -> EventPost:
    event = await db.get(EventPost, event_post_id)
    if event is None:
        raise NotFound("Event not found")
    return event


async def current_request(
    db: AsyncSession, from_user_id: str, event_post_id: str
) -> Optional[LinkUpRequest]:
    """The requester's most recent request for the event, if any."""
    rows = await db.execute(
        select(LinkUpRequest)
        .where(
            LinkUpRequest.from_user_id == from_user_id,
            LinkUpRequest.event_post_id == event_post_id,
        )
        .order_by(LinkUpRequest.created_at.desc())
        .limit(1)
    )
    return rows.scalars().first()


async def insert_request(
    db: AsyncSession, from_user_id: str, event: EventPost
) -> LinkUpRequest:
    link_up = LinkUpRequest(
        from_user_id=from_user_id,
        to_user_id=event.owner_user_id,
        event_post_id=event.id,
        status=PENDING,
    )
    db.add(link_up)
    await db.commit()
    return link_up


async def request_link_up(
    db: AsyncSession, principal: Principal, event_post_id: str
) -> Optional[LinkUpRequest]:
    """Open a pending request; returns None when the request is a no-op."""
    with tracer.start_as_current_span("request_link_up") as span:
        span.set_attribute("linkup.event_post_id", event_post_id)
        span.set_attribute("linkup.from_user_id", principal.user_id)

        event = await get_event(db, event_post_id)

        outcome = None
        if event.owner_user_id == principal.user_id:
            outcome = "own_event"
        elif event.is_full:
            outcome = "full"
        elif await current_request(db, principal.user_id, event.id) is not None:
            outcome = "duplicate"

        if outcome:
            LINKUP_REQUESTS_TOTAL.labels(outcome=outcome).inc()
            span.set_attribute("linkup.outcome", outcome)
            logger.info(
                "Link-up request by %s for %s ignored (%s)",
                principal.user_id, event.id, outcome,
            )
            return None

        link_up = await insert_request(db, principal.user_id, event)
        LINKUP_REQUESTS_TOTAL.labels(outcome="created").inc()
        span.set_attribute("linkup.outcome", "created")
        logger.info(
            "Link-up request %s: %s → %s for event %s",
            link_up.id, principal.user_id, event.owner_user_id, event.id,
        )

        await announce(
            [incoming_channel(event.owner_user_id)],
            "linkup_requested",
            request_id=link_up.id,
            event_post_id=event.id,
            from_user_id=principal.user_id,
            from_display_name=principal.display_name,
            to_user_id=event.owner_user_id,
            place_name=event.place_name,
        )
        return link_up


async def decide(
    db: AsyncSession, principal: Principal, request_id: str, decision: str
) -> LinkUpRequest:
    """Owner accepts or declines a pending request."""
    if decision not in (ACCEPTED, DECLINED):
        raise ValidationFailed(f"Unknown decision '{decision}'")

    with tracer.start_as_current_span("decide_link_up") as span:
        span.set_attribute("linkup.request_id", request_id)
        span.set_attribute("linkup.decision", decision)

        link_up = await db.get(LinkUpRequest, request_id)
        if link_up is None:
            raise NotFound("Request not found")
        event = await get_event(db, link_up.event_post_id)
        if event.owner_user_id != principal.user_id:
            raise Forbidden("Only the event owner can answer this request")
        if link_up.status != PENDING:
            raise InvalidTransition(f"Request is already {link_up.status}")

        # One-way transition: only a still-pending row is updated
        moved = await db.execute(
            update(LinkUpRequest)
            .where(LinkUpRequest.id == link_up.id, LinkUpRequest.status == PENDING)
            .values(status=decision, decided_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if moved.rowcount == 0:
            await db.rollback()
            raise InvalidTransition("Request was already answered")

        if decision == ACCEPTED:
            increment = (
                update(EventPost)
                .where(EventPost.id == event.id)
                .values(current_interested_count=EventPost.current_interested_count + 1)
                .execution_options(synchronize_session=False)
            )
            if settings.strict_capacity:
                increment = increment.where(
                    or_(
                        EventPost.max_participants == UNLIMITED,
                        EventPost.current_interested_count < EventPost.max_participants,
                    )
                )
            bumped = await db.execute(increment)
            if bumped.rowcount == 0:
                await db.rollback()
                raise InvalidTransition("Event is full")

        await db.commit()
        await db.refresh(link_up)
        await db.refresh(event)

        LINKUP_DECISIONS_TOTAL.labels(decision=decision).inc()
        logger.info(
            "Link-up request %s %s by %s (event %s now %d/%d)",
            link_up.id, decision, principal.user_id, event.id,
            event.current_interested_count, event.max_participants,
        )

        channels = [incoming_channel(event.owner_user_id)]
        if decision == ACCEPTED:
            channels.append(location_channel(event.location_key))
        await announce(
            channels,
            "linkup_decided",
            request_id=link_up.id,
            event_post_id=event.id,
            from_user_id=link_up.from_user_id,
            to_user_id=link_up.to_user_id,
            status=decision,
            place_name=event.place_name,
        )
        return link_up


async def link_up_status(
    db: AsyncSession, principal: Principal, event_post_id: str
) -> LinkUpStatusResponse:
    """The principal's view of their request for an event."""
    event = await get_event(db, event_post_id)
    link_up = await current_request(db, principal.user_id, event.id)

    contact = None
    if link_up is not None and link_up.status == ACCEPTED:
        owner = await db.get(UserProfile, event.owner_user_id)
        if owner is not None:
            contact = ContactInfo(channel=owner.contact_channel, value=owner.contact_value)

    return LinkUpStatusResponse(
        event_post_id=event.id,
        status=link_up.status if link_up else "none",
        request_id=link_up.id if link_up else None,
        is_full=event.is_full,
        contact=contact,
    )


async def incoming_requests(db: AsyncSession, owner_user_id: str) -> list[IncomingRequest]:
    """Pending requests addressed to the owner, newest first, with context."""
    rows = await db.execute(
        select(LinkUpRequest)
        .where(LinkUpRequest.to_user_id == owner_user_id, LinkUpRequest.status == PENDING)
        .order_by(LinkUpRequest.created_at.desc())
    )
    pending = list(rows.scalars().all())
    if not pending:
        return []

    profile_rows = await db.execute(
        select(UserProfile).where(UserProfile.user_id.in_(list({r.from_user_id for r in pending})))
    )
    names = {p.user_id: p.display_name for p in profile_rows.scalars().all()}
    event_rows = await db.execute(
        select(EventPost).where(EventPost.id.in_(list({r.event_post_id for r in pending})))
    )
    events = {e.id: e for e in event_rows.scalars().all()}

    result = []
    for link_up in pending:
        event = events.get(link_up.event_post_id)
        result.append(
            IncomingRequest(
                id=link_up.id,
                from_user_id=link_up.from_user_id,
                to_user_id=link_up.to_user_id,
                event_post_id=link_up.event_post_id,
                status=link_up.status,
                created_at=link_up.created_at,
                decided_at=link_up.decided_at,
                from_display_name=names.get(link_up.from_user_id) or "Unknown User",
                event=EventPostResponse.model_validate(event) if event else None,
            )
        )
    return result


async def express_interest(
    db: AsyncSession, principal: Principal, event_post_id: str
) -> InterestResponse:
    """Mark interest in a post; a no-op for the owner, repeats, or full events."""
    event = await get_event(db, event_post_id)

    existing = await db.execute(
        select(PostInterest.id).where(
            PostInterest.event_post_id == event.id,
            PostInterest.user_id == principal.user_id,
        )
    )
    already = existing.first() is not None
    if already or event.owner_user_id == principal.user_id or event.is_full:
        return InterestResponse(
            event_post_id=event.id,
            interested=already,
            current_interested_count=event.current_interested_count,
        )

    display_name = principal.display_name
    if not display_name:
        profile = await db.get(UserProfile, principal.user_id)
        display_name = profile.display_name if profile and profile.display_name else "Anonymous"

    db.add(
        PostInterest(
            event_post_id=event.id,
            user_id=principal.user_id,
            user_display_name=display_name,
        )
    )
    await db.execute(
        update(EventPost)
        .where(EventPost.id == event.id)
        .values(current_interested_count=EventPost.current_interested_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(event)
    logger.info("%s is interested in event %s", principal.user_id, event.id)

    await announce(
        [location_channel(event.location_key)],
        "interest_expressed",
        event_post_id=event.id,
        user_id=principal.user_id,
        user_display_name=display_name,
        to_user_id=event.owner_user_id,
        place_name=event.place_name,
    )
    return InterestResponse(
        event_post_id=event.id,
        interested=True,
        current_interested_count=event.current_interested_count,
    )
