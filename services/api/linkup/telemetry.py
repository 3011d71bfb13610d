"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics for the link-up engine, ratings, feeds and watches

Both are initialised once at startup and injected into FastAPI via middleware.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import Counter, Gauge, Histogram

from linkup.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
POSTS_CREATED_TOTAL = Counter(
    "linkup_posts_created_total",
    "Total number of event posts created",
)

LINKUP_REQUESTS_TOTAL = Counter(
    "linkup_requests_total",
    "Link-up request attempts by outcome",
    ["outcome"],  # created | duplicate | full | own_event
)

LINKUP_DECISIONS_TOTAL = Counter(
    "linkup_decisions_total",
    "Owner decisions on pending link-up requests",
    ["decision"],
)

RATINGS_TOTAL = Counter(
    "linkup_ratings_total",
    "Rating submissions by outcome",
    ["outcome"],  # recorded | already_rated
)

ACTIVE_WATCHES = Gauge(
    "linkup_active_watches",
    "Live query subscriptions currently open",
    ["kind"],  # feed | incoming
)

RECOMMENDATION_LATENCY = Histogram(
    "linkup_recommendation_latency_seconds",
    "Latency of the recommended-posts query and re-rank",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing() -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    if not settings.tracing_enabled:
        logger.info("OTel tracing disabled")
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

    trace.set_tracer_provider(provider)

    # Auto-instrument the store and pub/sub clients
    RedisInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app)
