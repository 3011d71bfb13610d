"""
Async Kafka producer.

Publishes domain events to the 'linkup-events' topic:
  post_created        — a new EventPost was persisted.
  linkup_requested    — a requester opened a pending LinkUpRequest.
  linkup_decided      — the owner accepted or declined a request.
  interest_expressed  — someone marked interest in a post.
  rating_submitted    — a rating was recorded.

Consumed by: notification-worker (per-user notification mailboxes).
"""
import json
import logging
import time
from typing import Optional

from aiokafka import AIOKafkaProducer

from linkup.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None


async def init_kafka() -> None:
    global _producer
    _producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        acks="all",          # wait for all in-sync replicas
        enable_idempotence=True,
    )
    await _producer.start()
    logger.info(
        "Kafka producer started → %s", settings.kafka_bootstrap_servers
    )


async def stop_kafka() -> None:
    if _producer:
        await _producer.stop()


def get_producer() -> AIOKafkaProducer:
    if _producer is None:
        raise RuntimeError("Kafka producer not initialised")
    return _producer


async def publish_event(event_type: str, **payload) -> None:
    """
    Emit a domain event.

    Schema:
      { type, ts, ...payload }

    Events are keyed by the event post so a post's history stays ordered
    within a partition.
    """
    producer = get_producer()
    message = {"type": event_type, "ts": time.time(), **payload}
    key = payload.get("event_post_id")
    await producer.send_and_wait(
        settings.kafka_topic_events,
        message,
        key=key.encode("utf-8") if key else None,
    )
    logger.debug("Published %s event: %s", event_type, payload)
