# db.py
import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from fabricai.settings import settings

# --- Configuration & Setup ---
log = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """Rewrites plain PostgreSQL URLs so they use the asyncpg driver."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def build_engine(url: str):
    """
    Creates the async engine for the given URL.

    SQLite files get a NullPool: every session opens its own connection, so
    sessions never outlive the event loop that created them.
    """
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        log.info("Using local SQLite database.")
        return create_async_engine(url, echo=False, poolclass=NullPool)

    log.info("Connecting to PostgreSQL database.")
    return create_async_engine(
        url,
        echo=False,
        pool_size=10,
        max_overflow=5,
        pool_timeout=30,
        pool_recycle=1800,  # recycle idle connections before the server drops them
    )


# --- SQLAlchemy Engine & Session ---
engine = build_engine(settings.DATABASE_URL)

async_session_maker = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Base class for declarative models. All models in `models.py` inherit from this.
Base = declarative_base()


# --- FastAPI Dependency ---

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session to each request.
    The session is rolled back on error and always closed.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
