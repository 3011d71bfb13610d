"""
Rating endpoints:
  POST /ratings                       — rate someone you met (once per event)
  GET  /ratings/users/{id}            — ratings received, newest first
  GET  /ratings/users/{id}/summary    — count, average and star distribution
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from linkup import ratings
from linkup.auth import Principal, get_principal
from linkup.database import get_db
from linkup.schemas import RatingCreate, RatingResponse, RatingSummary

router = APIRouter()


@router.post("/", response_model=RatingResponse, status_code=status.HTTP_201_CREATED)
async def submit_rating(
    body: RatingCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    rating = await ratings.submit_rating(
        db,
        principal,
        event_post_id=body.event_post_id,
        to_user_id=body.to_user_id,
        stars=body.stars,
        comment=body.comment,
        is_anonymous=body.is_anonymous,
    )
    return ratings.to_response(rating)


@router.get("/users/{user_id}", response_model=list[RatingResponse])
async def list_ratings(
    user_id: str,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await ratings.list_ratings(db, user_id, limit=limit)


@router.get("/users/{user_id}/summary", response_model=RatingSummary)
async def rating_summary(user_id: str, db: AsyncSession = Depends(get_db)):
    return await ratings.summary(db, user_id)
