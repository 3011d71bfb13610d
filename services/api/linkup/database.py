"""
Async SQLAlchemy engine + session factory for the document store.

Production runs on TiDB (MySQL wire protocol, aiomysql driver); local
development and the test-suite point DATABASE_URL at SQLite (aiosqlite).
The engine is created once at startup and reused across all requests.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from linkup.config import settings

logger = logging.getLogger(__name__)


def engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # One shared connection so an in-memory database survives across sessions
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {"pool_pre_ping": True, "pool_size": 20, "max_overflow": 10}


engine = create_async_engine(
    settings.sqlalchemy_url,
    echo=False,
    **engine_options(settings.sqlalchemy_url),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create all tables if they don't exist (idempotent)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def get_db():
    """FastAPI dependency that yields an async DB session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
