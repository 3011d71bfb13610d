"""
Recommended posts — one-shot, not live.

  1. Fetch upcoming posts (meetup_time > now), soonest first, capped.
  2. Count how many of each post's interest tags the viewer shares.
  3. Sort by that count, descending. The sort is stable, so equal counts
     keep the soonest-first order.
  4. Drop posts with no shared tag.

Viewers without a session, or without interests on their profile, are
matched against settings.popular_interests.
"""
import logging
import time
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linkup.auth import Principal
from linkup.config import settings
from linkup.models import EventPost, UserProfile, utcnow
from linkup.schemas import EventPostResponse, RecommendedPost, RecommendedResponse
from linkup.telemetry import RECOMMENDATION_LATENCY

logger = logging.getLogger(__name__)


async def viewer_interests(
    db: AsyncSession, principal: Optional[Principal]
) -> tuple[list[str], bool]:
    """(interests, personalised)"""
    if principal is not None:
        profile = await db.get(UserProfile, principal.user_id)
        if profile is not None and profile.interest_tags:
            return list(profile.interest_tags), True
    return list(settings.popular_interests), False


def rank_by_overlap(posts: list[EventPost], interests: list[str]) -> list[tuple[EventPost, int]]:
    wanted = set(interests)
    scored = [(post, sum(1 for tag in post.interest_tags if tag in wanted)) for post in posts]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return [pair for pair in scored if pair[1] > 0]


async def upcoming_posts(db: AsyncSession, now: datetime, limit: int) -> list[EventPost]:
    rows = await db.execute(
        select(EventPost)
        .where(EventPost.meetup_time > now)
        .order_by(EventPost.meetup_time.asc())
        .limit(limit)
    )
    return list(rows.scalars().all())


async def recommend(
    db: AsyncSession,
    principal: Optional[Principal],
    now: Optional[datetime] = None,
) -> RecommendedResponse:
    start = time.perf_counter()
    interests, personalised = await viewer_interests(db, principal)
    posts = await upcoming_posts(db, now or utcnow(), settings.recommendation_limit)
    ranked = rank_by_overlap(posts, interests)
    RECOMMENDATION_LATENCY.observe(time.perf_counter() - start)

    logger.debug(
        "Recommended %d of %d upcoming posts (personalised=%s)",
        len(ranked), len(posts), personalised,
    )
    return RecommendedResponse(
        personalised=personalised,
        interests=interests,
        posts=[
            RecommendedPost(
                **EventPostResponse.model_validate(post).model_dump(),
                match_count=count,
            )
            for post, count in ranked
        ],
    )
