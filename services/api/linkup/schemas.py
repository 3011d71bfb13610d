"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.
"""
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

ContactChannel = Literal["phone", "instagram", "other"]
Gender = Literal["male", "female", "other", "prefer_not_to_say"]
RequestStatus = Literal["none", "pending", "accepted", "declined"]
Decision = Literal["accepted", "declined"]


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ──────────────────────────── Profiles ────────────────────────────────────

class ProfileUpdate(BaseModel):
    """Merge-upsert: fields left out keep their stored value."""
    display_name: Optional[str] = Field(None, max_length=255)
    contact_channel: Optional[ContactChannel] = None
    contact_value: Optional[str] = Field(None, max_length=255)
    interest_tags: Optional[list[str]] = None
    photo_url: Optional[str] = None
    age: Optional[int] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    gender: Optional[Gender] = None
    occupation: Optional[str] = None
    languages: Optional[list[str]] = None


class PublicProfileResponse(BaseModel):
    user_id: str
    display_name: str
    interest_tags: list[str]
    photo_url: Optional[str] = None
    age: Optional[int] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    gender: Optional[str] = None
    occupation: Optional[str] = None
    languages: Optional[list[str]] = None
    average_rating: Optional[float] = None
    total_ratings: int = 0

    class Config:
        from_attributes = True


class ProfileResponse(PublicProfileResponse):
    contact_channel: str
    contact_value: str


# ──────────────────────────── Event posts ─────────────────────────────────

class EventPostCreate(BaseModel):
    place_name: str = Field(..., max_length=255)
    # Feed filter key; defaults to the place name
    location_key: Optional[str] = Field(None, max_length=255)
    meetup_time: datetime
    # -1 = unlimited; omitted = settings.default_max_participants
    max_participants: Optional[int] = Field(None, ge=-1)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("meetup_time")
    @classmethod
    def normalise_meetup_time(cls, value: datetime) -> datetime:
        return _naive_utc(value)


class EventPostUpdate(BaseModel):
    meetup_time: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=-1)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("meetup_time")
    @classmethod
    def normalise_meetup_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(value)


class EventPostResponse(BaseModel):
    id: str
    owner_user_id: str
    owner_display_name: str
    location_key: str
    place_name: str
    meetup_time: datetime
    max_participants: int
    current_interested_count: int
    interest_tags: list[str]
    description: Optional[str]
    created_at: datetime
    is_full: bool

    class Config:
        from_attributes = True


class Participant(BaseModel):
    user_id: str
    display_name: str
    contact_channel: str
    contact_value: str


class MyEvent(EventPostResponse):
    is_owner: bool
    # Accepted participants; only filled for the owner's upcoming events
    participants: list[Participant] = []


class MyEventsResponse(BaseModel):
    upcoming: list[MyEvent]
    past: list[MyEvent]


# ──────────────────────────── Feed ────────────────────────────────────────

class FeedSnapshot(BaseModel):
    """One full-state snapshot of a live location feed."""
    location: str
    posts: list[EventPostResponse]
    empty: bool
    error: Optional[str] = None


class RecommendedPost(EventPostResponse):
    match_count: int


class RecommendedResponse(BaseModel):
    personalised: bool
    interests: list[str]
    posts: list[RecommendedPost]


# ──────────────────────────── Link-ups ────────────────────────────────────

class LinkUpRequestResponse(BaseModel):
    id: str
    from_user_id: str
    to_user_id: str
    event_post_id: str
    status: str
    created_at: datetime
    decided_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DecisionRequest(BaseModel):
    decision: Decision


class ContactInfo(BaseModel):
    channel: str
    value: str


class LinkUpStatusResponse(BaseModel):
    event_post_id: str
    status: RequestStatus
    request_id: Optional[str] = None
    is_full: bool
    # Owner's contact; present only once the request was accepted
    contact: Optional[ContactInfo] = None


class IncomingRequest(LinkUpRequestResponse):
    from_display_name: str
    event: Optional[EventPostResponse] = None


class InterestResponse(BaseModel):
    event_post_id: str
    interested: bool
    current_interested_count: int


# ──────────────────────────── Ratings ─────────────────────────────────────

class RatingCreate(BaseModel):
    event_post_id: str
    to_user_id: str
    stars: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=1000)
    is_anonymous: bool = False


class RatingResponse(BaseModel):
    id: str
    # None when the rating was left anonymously
    from_user_id: Optional[str]
    to_user_id: str
    event_post_id: str
    stars: int
    comment: str
    is_anonymous: bool
    created_at: datetime


class RatingSummary(BaseModel):
    user_id: str
    total_ratings: int
    average_rating: Optional[float]
    # stars → count, 5 down to 1
    distribution: dict[int, int]


# ──────────────────────────── Notifications ───────────────────────────────

class Notification(BaseModel):
    type: str
    title: str
    body: str
    ts: float
    data: dict = {}
