"""
Profile endpoints:
  PUT /profiles/me        — create or merge-update the caller's profile
  GET /profiles/me        — the caller's full profile (contact included)
  GET /profiles/{user_id} — public view (contact withheld until a link-up is accepted)
"""
import logging
from typing import Union

from fastapi import APIRouter, Depends
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from linkup.auth import Principal, get_principal
from linkup.database import get_db
from linkup.errors import NotFound
from linkup.models import UserProfile
from linkup.ratings import rating_stats
from linkup.schemas import ProfileResponse, ProfileUpdate, PublicProfileResponse

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)

# Columns that can't be cleared with an explicit null
_NOT_NULL = {"display_name", "contact_channel", "contact_value", "interest_tags"}


def _clean_tags(tags: list[str]) -> list[str]:
    """Trim, drop blanks and duplicates, keep first-seen order."""
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


async def _with_ratings(
    db: AsyncSession,
    profile: UserProfile,
    schema: type[PublicProfileResponse],
) -> Union[ProfileResponse, PublicProfileResponse]:
    total, average = await rating_stats(db, profile.user_id)
    return schema.model_validate(profile).model_copy(
        update={"total_ratings": total, "average_rating": average}
    )


@router.put("/me", response_model=ProfileResponse)
async def upsert_my_profile(
    body: ProfileUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("upsert_profile"):
        profile = await db.get(UserProfile, principal.user_id)
        created = profile is None
        if created:
            profile = UserProfile(
                user_id=principal.user_id,
                display_name=principal.display_name or "",
                contact_channel="phone",
                contact_value="",
                interest_tags=[],
            )
            db.add(profile)

        for name, value in body.model_dump(exclude_unset=True).items():
            if value is None and name in _NOT_NULL:
                continue
            if name in ("interest_tags", "languages") and value is not None:
                value = _clean_tags(value)
            setattr(profile, name, value)

        await db.commit()
        await db.refresh(profile)
        logger.info("%s profile %s", "Created" if created else "Updated", principal.user_id)
        return await _with_ratings(db, profile, ProfileResponse)


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    profile = await db.get(UserProfile, principal.user_id)
    if profile is None:
        raise NotFound("Profile not set up yet")
    return await _with_ratings(db, profile, ProfileResponse)


@router.get("/{user_id}", response_model=PublicProfileResponse)
async def get_profile(user_id: str, db: AsyncSession = Depends(get_db)):
    profile = await db.get(UserProfile, user_id)
    if profile is None:
        raise NotFound("User not found")
    return await _with_ratings(db, profile, PublicProfileResponse)
