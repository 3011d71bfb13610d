"""
Rating Component.

One rating per (event, rater): the rating id is "{event_post_id}_{from_user_id}",
checked before the write and backed by the primary key, so a duplicate that
slips past the check fails on insert and is reported the same way. The rated
user's count and sum live in the `users` table, upserted so that first ratings
from two raters at once both count; the average is derived on read.
"""
import logging
from typing import Optional

from opentelemetry import trace
from sqlalchemy import func, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linkup.announce import announce
from linkup.auth import Principal
from linkup.errors import AlreadyRated, NotFound, ValidationFailed
from linkup.models import EventPost, Rating, UserRatingStats, rating_id
from linkup.schemas import RatingResponse, RatingSummary
from linkup.telemetry import RATINGS_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _stats_upsert(dialect: str, user_id: str, stars: int):
    """INSERT the first rating's counters, or add to them if the row exists."""
    increments = {
        "total_ratings": UserRatingStats.total_ratings + 1,
        "total_rating_sum": UserRatingStats.total_rating_sum + stars,
    }
    values = {"user_id": user_id, "total_ratings": 1, "total_rating_sum": stars}
    if dialect == "sqlite":
        return sqlite_insert(UserRatingStats).values(**values).on_conflict_do_update(
            index_elements=[UserRatingStats.user_id], set_=increments
        )
    if dialect == "postgresql":
        return postgresql_insert(UserRatingStats).values(**values).on_conflict_do_update(
            index_elements=[UserRatingStats.user_id], set_=increments
        )
    # TiDB / MySQL
    return mysql_insert(UserRatingStats).values(**values).on_duplicate_key_update(**increments)


async def _add_to_stats(db: AsyncSession, user_id: str, stars: int) -> None:
    # Two raters can create the row at the same time, so never read-then-insert
    dialect = db.get_bind().dialect.name
    await db.execute(_stats_upsert(dialect, user_id, stars))


async def submit_rating(
    db: AsyncSession,
    principal: Principal,
    event_post_id: str,
    to_user_id: str,
    stars: int,
    comment: str = "",
    is_anonymous: bool = False,
) -> Rating:
    if not 1 <= stars <= 5:
        raise ValidationFailed("Ratings are 1 to 5 stars")
    if to_user_id == principal.user_id:
        raise ValidationFailed("You cannot rate yourself")

    with tracer.start_as_current_span("submit_rating") as span:
        span.set_attribute("rating.event_post_id", event_post_id)
        span.set_attribute("rating.to_user_id", to_user_id)

        event = await db.get(EventPost, event_post_id)
        if event is None:
            raise NotFound("Event not found")

        rid = rating_id(event_post_id, principal.user_id)
        if await db.get(Rating, rid) is not None:
            RATINGS_TOTAL.labels(outcome="already_rated").inc()
            raise AlreadyRated()

        rating = Rating(
            id=rid,
            from_user_id=principal.user_id,
            to_user_id=to_user_id,
            event_post_id=event_post_id,
            stars=stars,
            comment=comment or "",
            is_anonymous=is_anonymous,
        )
        db.add(rating)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            RATINGS_TOTAL.labels(outcome="already_rated").inc()
            raise AlreadyRated()

        await _add_to_stats(db, to_user_id, stars)
        await db.commit()

        RATINGS_TOTAL.labels(outcome="recorded").inc()
        logger.info(
            "Rating %s recorded: %d star(s) for %s", rid, stars, to_user_id
        )

    await announce(
        (),
        "rating_submitted",
        rating_id=rid,
        event_post_id=event_post_id,
        to_user_id=to_user_id,
        from_user_id=None if is_anonymous else principal.user_id,
        stars=stars,
        place_name=event.place_name,
    )
    return rating


def to_response(rating: Rating) -> RatingResponse:
    return RatingResponse(
        id=rating.id,
        from_user_id=None if rating.is_anonymous else rating.from_user_id,
        to_user_id=rating.to_user_id,
        event_post_id=rating.event_post_id,
        stars=rating.stars,
        comment=rating.comment,
        is_anonymous=rating.is_anonymous,
        created_at=rating.created_at,
    )


async def list_ratings(db: AsyncSession, user_id: str, limit: int = 100) -> list[RatingResponse]:
    rows = await db.execute(
        select(Rating)
        .where(Rating.to_user_id == user_id)
        .order_by(Rating.created_at.desc())
        .limit(limit)
    )
    return [to_response(r) for r in rows.scalars().all()]


async def rating_stats(db: AsyncSession, user_id: str) -> tuple[int, Optional[float]]:
    # Counters move through UPDATE statements, so bypass the identity map
    stats = await db.get(UserRatingStats, user_id, populate_existing=True)
    if stats is None:
        return 0, None
    return stats.total_ratings, stats.average_rating


async def summary(db: AsyncSession, user_id: str) -> RatingSummary:
    total, average = await rating_stats(db, user_id)
    rows = await db.execute(
        select(Rating.stars, func.count())
        .where(Rating.to_user_id == user_id)
        .group_by(Rating.stars)
    )
    counts = {stars: count for stars, count in rows.all()}
    return RatingSummary(
        user_id=user_id,
        total_ratings=total,
        average_rating=average,
        distribution={stars: counts.get(stars, 0) for stars in (5, 4, 3, 2, 1)},
    )
