"""
Feed endpoints:

  GET /feed/location?location=…   one snapshot of a location feed
  WS  /feed/ws?location=…         live location feed

The WebSocket streams a FeedSnapshot JSON document on open and after every
change to that location's posts. The client can switch location at any time
by sending {"location": "…"}; the previous watch is cancelled first, so each
socket holds exactly one subscription. An empty location pauses the feed;
frames that are not a JSON object are ignored.

  GET /feed/recommended            upcoming posts ranked by shared interests
"""
import asyncio
import contextlib
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from linkup.auth import Principal, get_optional_principal
from linkup.database import get_db
from linkup.recommendations import recommend
from linkup.schemas import EventPostResponse, FeedSnapshot, RecommendedResponse
from linkup.watch import FeedSubscriber, Snapshot, Watch, location_posts

logger = logging.getLogger(__name__)
router = APIRouter()


def to_feed_snapshot(location: str, snapshot: Snapshot) -> FeedSnapshot:
    return FeedSnapshot(
        location=location,
        posts=[EventPostResponse.model_validate(p) for p in snapshot.items],
        empty=snapshot.empty,
        error=snapshot.error,
    )


@router.get("/location", response_model=FeedSnapshot)
async def location_feed(
    location: str = Query(..., min_length=1, description="Location key to filter on"),
    db: AsyncSession = Depends(get_db),
):
    posts = await location_posts(db, location)
    return to_feed_snapshot(location, Snapshot(items=posts))


@router.get("/recommended", response_model=RecommendedResponse)
async def recommended_feed(
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: AsyncSession = Depends(get_db),
):
    return await recommend(db, principal)


async def _stop(pump: Optional[asyncio.Task]) -> None:
    if pump is None:
        return
    pump.cancel()
    # Sends to a socket that already closed fail here
    with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
        await pump


async def _forward(websocket: WebSocket, location: str, watch: Watch) -> None:
    async for snapshot in watch.snapshots():
        await websocket.send_json(to_feed_snapshot(location, snapshot).model_dump(mode="json"))


@router.websocket("/ws")
async def location_feed_socket(
    websocket: WebSocket,
    location: Optional[str] = Query(default=None),
):
    await websocket.accept()
    subscriber = FeedSubscriber()
    pump: Optional[asyncio.Task] = None

    async def switch(new_location: Optional[str]) -> None:
        nonlocal pump
        await _stop(pump)
        pump = None
        await subscriber.close()
        new_location = (new_location or "").strip()
        if new_location:
            watch = await subscriber.watch(new_location)
            pump = asyncio.create_task(_forward(websocket, new_location, watch))

    try:
        await switch(location)
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                logger.debug("Ignoring non-JSON feed frame: %.80s", raw)
                continue
            if not isinstance(data, dict):
                logger.debug("Ignoring feed frame without a location: %.80s", raw)
                continue
            await switch(data.get("location"))
    except WebSocketDisconnect:
        logger.debug("Feed socket disconnected (location=%s)", subscriber.location)
    finally:
        await _stop(pump)
        await subscriber.close()
