from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_events: str = "linkup-events"
    kafka_consumer_group: str = "notification-worker"

    # Redis — per-user notification mailboxes
    redis_host: str = "redis"
    redis_port: int = 6379
    notifications_ttl: int = 7 * 86400
    notifications_max_size: int = 200

    # OTel
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "notification-worker"

    class Config:
        env_file = ".env"


settings = Settings()
