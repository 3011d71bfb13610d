"""
Post-commit side notifications.

After a write is committed the engines tell live watchers (Redis PUBLISH)
and downstream consumers (Kafka) about it. Both are best-effort: the write
already happened, so a failure here is logged and the request still succeeds.
Watchers recover on the next change; notifications for that event are lost.
"""
import logging
from typing import Iterable, Optional

from linkup.clients.kafka_producer import publish_event
from linkup.clients.redis_client import publish_change

logger = logging.getLogger(__name__)


async def announce(
    channels: Iterable[str] = (),
    event_type: Optional[str] = None,
    **payload,
) -> None:
    for channel in channels:
        try:
            await publish_change(channel)
        except Exception as exc:
            logger.warning("Change notification on %s failed: %s", channel, exc)

    if event_type:
        try:
            await publish_event(event_type, **payload)
        except Exception as exc:
            logger.warning("Publishing %s event failed: %s", event_type, exc)
