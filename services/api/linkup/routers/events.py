"""
Event post endpoints:
  POST   /events                  — announce a meetup
  GET    /events/mine             — own events + events I was accepted into
  GET    /events/{id}             — fetch a single post
  PATCH  /events/{id}             — owner edits time / capacity / description
  DELETE /events/{id}             — owner removes the post
  POST   /events/{id}/linkup      — request to link up (no-op if not allowed)
  GET    /events/{id}/linkup      — my request state (+ owner contact once accepted)
  POST   /events/{id}/interest    — mark interest
"""
import logging

from fastapi import APIRouter, Depends, Response, status
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linkup import linkups
from linkup.announce import announce
from linkup.auth import Principal, get_principal
from linkup.clients.redis_client import location_channel
from linkup.config import settings
from linkup.database import get_db
from linkup.errors import Forbidden, InvalidTransition, ValidationFailed
from linkup.models import (
    ACCEPTED,
    UNLIMITED,
    EventPost,
    LinkUpRequest,
    UserProfile,
    utcnow,
)
from linkup.schemas import (
    EventPostCreate,
    EventPostResponse,
    EventPostUpdate,
    InterestResponse,
    LinkUpStatusResponse,
    MyEvent,
    MyEventsResponse,
    Participant,
)
from linkup.telemetry import POSTS_CREATED_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def _check_capacity(max_participants: int) -> None:
    if max_participants == 0 or max_participants < UNLIMITED:
        raise ValidationFailed("Allow at least 1 participant, or -1 for unlimited")


async def _owned_event(db: AsyncSession, principal: Principal, event_post_id: str) -> EventPost:
    event = await linkups.get_event(db, event_post_id)
    if event.owner_user_id != principal.user_id:
        raise Forbidden("Only the owner can change this event")
    return event


@router.post("/", response_model=EventPostResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    body: EventPostCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    """
    Validation mirrors the create form: the owner needs a profile with at
    least one interest, a place, and a meetup time that hasn't passed.
    The owner's interests and display name are copied onto the post.
    """
    with tracer.start_as_current_span("create_event") as span:
        profile = await db.get(UserProfile, principal.user_id)
        if profile is None or not profile.interest_tags:
            raise ValidationFailed("Please set up your profile with interests first")

        place_name = body.place_name.strip()
        if not place_name:
            raise ValidationFailed("Please select a place for your event")
        if body.meetup_time <= utcnow():
            raise ValidationFailed("Cannot create an event in the past")

        max_participants = body.max_participants
        if max_participants is None:
            max_participants = settings.default_max_participants
        _check_capacity(max_participants)

        event = EventPost(
            owner_user_id=principal.user_id,
            owner_display_name=profile.display_name or principal.display_name or "Anonymous",
            location_key=(body.location_key or "").strip() or place_name,
            place_name=place_name,
            meetup_time=body.meetup_time,
            max_participants=max_participants,
            current_interested_count=0,
            interest_tags=list(profile.interest_tags),
            description=body.description,
        )
        db.add(event)
        await db.commit()

        span.set_attribute("event.id", event.id)
        span.set_attribute("event.location_key", event.location_key)
        POSTS_CREATED_TOTAL.inc()
        logger.info("Event %s created by %s at %s", event.id, principal.user_id, event.location_key)

        await announce(
            [location_channel(event.location_key)],
            "post_created",
            event_post_id=event.id,
            owner_user_id=event.owner_user_id,
            location_key=event.location_key,
            place_name=event.place_name,
        )
        return event


@router.get("/mine", response_model=MyEventsResponse)
async def my_events(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    """Own events plus events the caller was accepted into, split on now."""
    own_rows = await db.execute(
        select(EventPost).where(EventPost.owner_user_id == principal.user_id)
    )
    events = {e.id: e for e in own_rows.scalars().all()}

    joined_rows = await db.execute(
        select(EventPost)
        .join(LinkUpRequest, LinkUpRequest.event_post_id == EventPost.id)
        .where(
            LinkUpRequest.from_user_id == principal.user_id,
            LinkUpRequest.status == ACCEPTED,
        )
    )
    for event in joined_rows.scalars().all():
        events.setdefault(event.id, event)

    now = utcnow()
    own_upcoming = [
        e.id for e in events.values()
        if e.owner_user_id == principal.user_id and e.is_upcoming(now)
    ]
    participants = await _accepted_participants(db, own_upcoming)

    upcoming: list[MyEvent] = []
    past: list[MyEvent] = []
    for event in sorted(events.values(), key=lambda e: e.meetup_time, reverse=True):
        item = MyEvent(
            **EventPostResponse.model_validate(event).model_dump(),
            is_owner=event.owner_user_id == principal.user_id,
            participants=participants.get(event.id, []),
        )
        (upcoming if event.is_upcoming(now) else past).append(item)
    return MyEventsResponse(upcoming=upcoming, past=past)


async def _accepted_participants(
    db: AsyncSession, event_ids: list[str]
) -> dict[str, list[Participant]]:
    if not event_ids:
        return {}
    rows = await db.execute(
        select(LinkUpRequest.event_post_id, LinkUpRequest.from_user_id, UserProfile)
        .select_from(LinkUpRequest)
        .outerjoin(UserProfile, UserProfile.user_id == LinkUpRequest.from_user_id)
        .where(LinkUpRequest.event_post_id.in_(event_ids), LinkUpRequest.status == ACCEPTED)
        .order_by(LinkUpRequest.decided_at)
    )
    result: dict[str, list[Participant]] = {}
    for event_id, from_user_id, profile in rows.all():
        result.setdefault(event_id, []).append(
            Participant(
                user_id=from_user_id,
                display_name=profile.display_name if profile else "Unknown User",
                contact_channel=profile.contact_channel if profile else "",
                contact_value=profile.contact_value if profile else "",
            )
        )
    return result


@router.get("/{event_post_id}", response_model=EventPostResponse)
async def get_event(event_post_id: str, db: AsyncSession = Depends(get_db)):
    return await linkups.get_event(db, event_post_id)


@router.patch("/{event_post_id}", response_model=EventPostResponse)
async def update_event(
    event_post_id: str,
    body: EventPostUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    event = await _owned_event(db, principal, event_post_id)
    now = utcnow()
    if not event.is_upcoming(now):
        raise InvalidTransition("Past events can't be edited")

    changes = body.model_dump(exclude_unset=True)
    if changes.get("meetup_time") is not None:
        if changes["meetup_time"] <= now:
            raise ValidationFailed("The selected date and time is in the past")
        event.meetup_time = changes["meetup_time"]
    if changes.get("max_participants") is not None:
        new_max = changes["max_participants"]
        _check_capacity(new_max)
        if new_max != UNLIMITED and new_max < event.current_interested_count:
            raise ValidationFailed("Capacity can't go below the people already joined")
        event.max_participants = new_max
    if "description" in changes:
        event.description = changes["description"]

    await db.commit()
    await db.refresh(event)
    logger.info("Event %s updated by owner", event.id)
    await announce([location_channel(event.location_key)])
    return event


@router.delete("/{event_post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_post_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    event = await _owned_event(db, principal, event_post_id)
    location_key = event.location_key
    await db.delete(event)
    await db.commit()
    logger.info("Event %s deleted by owner", event_post_id)
    await announce([location_channel(location_key)])


@router.post("/{event_post_id}/linkup", response_model=LinkUpStatusResponse)
async def request_link_up(
    event_post_id: str,
    response: Response,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    """201 when a pending request was opened; 200 with the unchanged state otherwise."""
    created = await linkups.request_link_up(db, principal, event_post_id)
    if created is not None:
        response.status_code = status.HTTP_201_CREATED
    return await linkups.link_up_status(db, principal, event_post_id)


@router.get("/{event_post_id}/linkup", response_model=LinkUpStatusResponse)
async def link_up_status(
    event_post_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return await linkups.link_up_status(db, principal, event_post_id)


@router.post("/{event_post_id}/interest", response_model=InterestResponse)
async def express_interest(
    event_post_id: str,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return await linkups.express_interest(db, principal, event_post_id)
