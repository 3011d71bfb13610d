"""
Notification Worker — Kafka consumer.

For every event on 'linkup-events':
  1. Work out who should hear about it:
       linkup_requested   → event owner
       linkup_decided     → requester
       interest_expressed → event owner
       rating_submitted   → rated user
       post_created       → nobody (the live feed already shows it)
  2. ZADD a JSON notification (score = event timestamp) to that user's
     Redis mailbox notifications:{user_id}.
  3. Trim the mailbox and refresh its TTL so it stays bounded.

The API serves mailboxes from GET /notifications.
"""
import asyncio
import json
import logging
import time
from typing import Optional

import redis.asyncio as aioredis
from aiokafka import AIOKafkaConsumer
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

from notifier.config import settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

tracer = trace.get_tracer(__name__)


# ─────────────────────────── OTel Setup ──────────────────────────────────

def setup_tracing() -> None:
    if not settings.tracing_enabled:
        return
    resource = Resource.create({"service.name": settings.service_name})
    provider = TracerProvider(resource=resource)
    try:
        exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint, insecure=True
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
    except Exception as exc:
        logger.warning("OTel exporter unavailable: %s", exc)
    trace.set_tracer_provider(provider)


# ─────────────────────────── Event → Notification ────────────────────────

def build_notification(event: dict) -> Optional[tuple[str, dict]]:
    """Return (recipient_user_id, notification) or None if nobody is told."""
    kind = event.get("type")
    place = event.get("place_name") or "your meetup"
    data = {
        k: event[k]
        for k in ("event_post_id", "request_id", "rating_id")
        if event.get(k)
    }

    if kind == "linkup_requested":
        recipient = event.get("to_user_id")
        who = event.get("from_display_name") or "Someone"
        title = "New link-up request"
        body = f"{who} wants to link up at {place}"
    elif kind == "linkup_decided":
        recipient = event.get("from_user_id")
        if event.get("status") == "accepted":
            title = "Linked up!"
            body = f"Your request for {place} was accepted. You can now see their contact info."
        else:
            title = "Request declined"
            body = f"Your request for {place} was declined"
        data["status"] = event.get("status")
    elif kind == "interest_expressed":
        recipient = event.get("to_user_id")
        who = event.get("user_display_name") or "Someone"
        title = "Someone is interested"
        body = f"{who} is interested in {place}"
    elif kind == "rating_submitted":
        recipient = event.get("to_user_id")
        title = "New rating"
        body = f"You received a {event.get('stars')}-star rating for {place}"
    else:
        return None

    if not recipient:
        logger.warning("Malformed %s event: %s", kind, event)
        return None

    notification = {
        "type": kind,
        "title": title,
        "body": body,
        "ts": event.get("ts") or time.time(),
        "data": data,
    }
    return recipient, notification


# ─────────────────────────── Redis Helpers ───────────────────────────────

async def push_notification(
    redis: aioredis.Redis,
    user_id: str,
    notification: dict,
) -> None:
    key = f"notifications:{user_id}"
    pipe = redis.pipeline()
    pipe.zadd(key, {json.dumps(notification, sort_keys=True): notification["ts"]})
    pipe.zremrangebyrank(key, 0, -(settings.notifications_max_size + 1))
    pipe.expire(key, settings.notifications_ttl)
    await pipe.execute()


# ─────────────────────────── Message Handler ─────────────────────────────

async def process_message(msg: dict, redis: aioredis.Redis) -> None:
    built = build_notification(msg)
    if built is None:
        return
    recipient, notification = built

    with tracer.start_as_current_span("notify") as span:
        span.set_attribute("notification.type", notification["type"])
        span.set_attribute("notification.user_id", recipient)
        await push_notification(redis, recipient, notification)

    logger.info("Notified %s: %s", recipient, notification["title"])


# ─────────────────────────── Main Loop ───────────────────────────────────

async def main() -> None:
    setup_tracing()

    redis = aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
    )
    await redis.ping()

    consumer = AIOKafkaConsumer(
        settings.kafka_topic_events,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        auto_offset_reset="earliest",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
    )
    await consumer.start()
    logger.info(
        "Notification worker listening on topic '%s'", settings.kafka_topic_events
    )

    try:
        async for msg in consumer:
            try:
                await process_message(msg.value, redis)
            except Exception as exc:
                logger.error("Notification error for %s: %s", msg.value, exc)
    finally:
        await consumer.stop()
        await redis.aclose()


if __name__ == "__main__":
    asyncio.run(main())
