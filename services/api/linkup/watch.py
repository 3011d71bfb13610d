"""
Live queries over the document store.

    watch(query) -> stream of full snapshots

A Watch subscribes to its Redis change channel *before* running the first
query, so a write committed in between is never missed. Every change
notification triggers a full re-query; notifications that pile up while a
snapshot is being built collapse into one re-query. Delivery is therefore
at-least-once, of whole snapshots; consumers diff if they need to.

On a store or Redis failure the watch yields one snapshot carrying an error
and ends. There is no automatic retry: the client re-subscribes.
"""
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import AsyncIterator, Awaitable, Callable, Optional

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from linkup.clients.redis_client import get_redis, location_channel
from linkup.config import settings
from linkup.database import AsyncSessionLocal
from linkup.models import EventPost
from linkup.telemetry import ACTIVE_WATCHES

logger = logging.getLogger(__name__)

STORE_UNAVAILABLE = "The data store is unavailable, please try again"

Fetch = Callable[[AsyncSession], Awaitable[list]]


@dataclass
class Snapshot:
    items: list = field(default_factory=list)
    error: Optional[str] = None

    @property
    def empty(self) -> bool:
        return self.error is None and not self.items


class Watch:
    """Cancellable live query bound to one change channel."""

    def __init__(
        self,
        channel: str,
        fetch: Fetch,
        kind: str = "feed",
        poll_interval: Optional[float] = None,
    ) -> None:
        self.channel = channel
        self.kind = kind
        self._fetch = fetch
        self._poll_interval = poll_interval or settings.watch_poll_interval
        self._pubsub = None
        self._iterating = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def snapshots(self) -> AsyncIterator[Snapshot]:
        if self._closed:
            return
        self._iterating = True
        try:
            try:
                await self._subscribe()
            except RedisError as exc:
                logger.error("Watch on %s could not subscribe: %s", self.channel, exc)
                yield Snapshot(error=STORE_UNAVAILABLE)
                return

            snapshot = await self._query()
            yield snapshot
            while snapshot.error is None and not self._closed:
                try:
                    changed = await self._wait_for_change()
                except RedisError as exc:
                    logger.error("Watch on %s lost its subscription: %s", self.channel, exc)
                    yield Snapshot(error=STORE_UNAVAILABLE)
                    return
                if changed and not self._closed:
                    snapshot = await self._query()
                    yield snapshot
        finally:
            self._iterating = False
            self._closed = True
            await self._release()

    async def close(self) -> None:
        """Stop the watch. An iteration in progress ends at its next poll."""
        self._closed = True
        if not self._iterating:
            await self._release()

    async def _subscribe(self) -> None:
        self._pubsub = get_redis().pubsub()
        await self._pubsub.subscribe(self.channel)
        ACTIVE_WATCHES.labels(kind=self.kind).inc()
        logger.debug("Watch opened on %s", self.channel)

    async def _release(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        ACTIVE_WATCHES.labels(kind=self.kind).dec()
        try:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
        except RedisError as exc:
            logger.warning("Watch on %s did not unsubscribe cleanly: %s", self.channel, exc)
        logger.debug("Watch closed on %s", self.channel)

    async def _query(self) -> Snapshot:
        try:
            async with AsyncSessionLocal() as session:
                items = await self._fetch(session)
        except SQLAlchemyError as exc:
            logger.error("Watch query on %s failed: %s", self.channel, exc)
            return Snapshot(error=STORE_UNAVAILABLE)
        return Snapshot(items=items)

    async def _wait_for_change(self) -> bool:
        message = await self._pubsub.get_message(
            ignore_subscribe_messages=True, timeout=self._poll_interval
        )
        if message is None:
            return False
        # Coalesce a burst of notifications into one re-query
        while await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=0.0):
            pass
        return True


async def location_posts(session: AsyncSession, location: str) -> list[EventPost]:
    """Posts for one location, newest first."""
    rows = await session.execute(
        select(EventPost)
        .where(EventPost.location_key == location)
        .order_by(EventPost.created_at.desc())
    )
    return list(rows.scalars().all())


class FeedSubscriber:
    """
    Holds at most one live location feed.

    Watching a new location closes the previous watch first, so each
    subscriber has exactly one active subscription.
    """

    def __init__(self, poll_interval: Optional[float] = None) -> None:
        self.location: Optional[str] = None
        self._current: Optional[Watch] = None
        self._poll_interval = poll_interval

    async def watch(self, location: str) -> Watch:
        location = (location or "").strip()
        if not location:
            raise ValueError("location is required")
        await self.close()
        self.location = location
        self._current = Watch(
            location_channel(location),
            partial(location_posts, location=location),
            kind="feed",
            poll_interval=self._poll_interval,
        )
        return self._current

    async def close(self) -> None:
        if self._current is not None:
            await self._current.close()
        self._current = None
        self.location = None
