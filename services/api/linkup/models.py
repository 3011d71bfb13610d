"""
SQLAlchemy ORM models — one table per document collection.

Tables:
  user_profiles     — profile + contact details (contact revealed on accept)
  users             — rating aggregates (count + sum, average derived on read)
  event_posts       — meetup announcements, filtered by location_key
  link_up_requests  — requester → owner join requests (pending/accepted/declined)
  post_interests    — lightweight "interested" markers
  ratings           — one rating per (event, rater), id is deterministic
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from linkup.database import Base

UNLIMITED = -1

PENDING = "pending"
ACCEPTED = "accepted"
DECLINED = "declined"


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def rating_id(event_post_id: str, from_user_id: str) -> str:
    return f"{event_post_id}_{from_user_id}"


class UserProfile(Base):
    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    contact_channel: Mapped[str] = mapped_column(String(20), nullable=False, default="phone")
    contact_value: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    interest_tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    photo_url: Mapped[Optional[str]] = mapped_column(String(500))
    age: Mapped[Optional[int]] = mapped_column(Integer)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    bio: Mapped[Optional[str]] = mapped_column(Text)
    gender: Mapped[Optional[str]] = mapped_column(String(32))
    occupation: Mapped[Optional[str]] = mapped_column(String(255))
    languages: Mapped[Optional[list]] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class UserRatingStats(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_ratings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_rating_sum: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def average_rating(self) -> Optional[float]:
        if not self.total_ratings:
            return None
        return self.total_rating_sum / self.total_ratings


class EventPost(Base):
    __tablename__ = "event_posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    owner_display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    location_key: Mapped[str] = mapped_column(String(255), nullable=False)
    place_name: Mapped[str] = mapped_column(String(255), nullable=False)
    meetup_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    current_interested_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Copied from the owner's profile at creation; never re-synchronised
    interest_tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        # Live location feed: WHERE location_key = ? ORDER BY created_at DESC
        Index("idx_posts_location_created", "location_key", "created_at"),
        Index("idx_posts_meetup", "meetup_time"),
        Index("idx_posts_owner", "owner_user_id"),
    )

    @property
    def is_full(self) -> bool:
        if self.max_participants == UNLIMITED:
            return False
        return self.current_interested_count >= self.max_participants

    def is_upcoming(self, now: Optional[datetime] = None) -> bool:
        return self.meetup_time > (now or utcnow())


class LinkUpRequest(Base):
    __tablename__ = "link_up_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    from_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    to_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    event_post_id: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        # Owner's inbox: WHERE to_user_id = ? AND status = 'pending'
        Index("idx_requests_to_status", "to_user_id", "status"),
        Index("idx_requests_from_event", "from_user_id", "event_post_id"),
        Index("idx_requests_event", "event_post_id"),
    )


class PostInterest(Base):
    __tablename__ = "post_interests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_post_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_interests_event_user", "event_post_id", "user_id"),
    )


class Rating(Base):
    __tablename__ = "ratings"

    # "{event_post_id}_{from_user_id}" — see rating_id()
    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    from_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    to_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    event_post_id: Mapped[str] = mapped_column(String(36), nullable=False)
    stars: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_ratings_to_created", "to_user_id", "created_at"),
    )
