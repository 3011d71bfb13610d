"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "linkup"

    # Full SQLAlchemy URL; overrides the TiDB fields when set
    # (e.g. sqlite+aiosqlite:///./linkup.db for local development).
    database_url: Optional[str] = None

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    # ── Redis ──────────────────────────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    notifications_page_size: int = 50

    # ── Kafka ──────────────────────────────────────────────────────────────
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_events: str = "linkup-events"

    # ── Identity provider ──────────────────────────────────────────────────
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"

    # ── Domain ─────────────────────────────────────────────────────────────
    popular_interests: list[str] = ["Sports", "Music", "Food", "Movies", "Gaming"]
    recommendation_limit: int = 50
    default_max_participants: int = 2
    # Guard the accept increment with a compare-and-swap on capacity
    strict_capacity: bool = False
    # Seconds a watch blocks on Redis before checking for cancellation
    watch_poll_interval: float = 1.0

    # ── Observability ──────────────────────────────────────────────────────
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "linkup-api"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
