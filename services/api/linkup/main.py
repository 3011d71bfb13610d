"""
Link-Up API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Initialise the store engine and create tables if not present
  3. Start Kafka producer (domain events → notification-worker)
  4. Connect to Redis (change notifications for live queries, mailboxes)
  5. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from linkup.config import settings
from linkup.database import init_db
from linkup.errors import LinkUpError
from linkup.telemetry import setup_tracing, instrument_app
from linkup.clients.kafka_producer import init_kafka, stop_kafka
from linkup.clients.redis_client import close_redis, init_redis
from linkup.routers import events, feed, linkups, notifications, profiles, ratings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Link-Up API (env=%s)", settings.environment)

    await init_db()
    await init_kafka()
    await init_redis()

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await stop_kafka()
    await close_redis()


app = FastAPI(
    title="Link-Up API",
    description=(
        "Location-based meetups: post where you'll be, browse a live feed of "
        "posts for a place, request to link up, and rate people afterwards."
    ),
    version="1.0.0",
    lifespan=lifespan,
)


# ── Error mapping ─────────────────────────────────────────────────────────
@app.exception_handler(LinkUpError)
async def linkup_error_handler(request: Request, exc: LinkUpError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "The data store is unavailable, please try again"},
    )


@app.exception_handler(RedisError)
async def redis_error_handler(request: Request, exc: RedisError):
    logger.error("Redis error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Live updates are unavailable, please try again"},
    )


# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
app.include_router(events.router, prefix="/events", tags=["Events"])
app.include_router(feed.router, prefix="/feed", tags=["Feed"])
app.include_router(linkups.router, prefix="/linkups", tags=["Link-ups"])
app.include_router(ratings.router, prefix="/ratings", tags=["Ratings"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Mounted at /metrics — scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
