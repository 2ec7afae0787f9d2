"""Database engine, session factory and declarative base.

PostgreSQL (asyncpg) is the production backend; SQLite (aiosqlite) is
accepted for local runs and the test suite. Sessions do not expire loaded
objects on commit, so services can keep using rows after committing
without triggering implicit async loads.
"""

from config.config import settings
from core.logging import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base


def _engine_options(url: str) -> dict:
    """Return `create_async_engine` keyword arguments for `url`.

    SQLite does not accept queue pool sizing arguments.
    """

    options = {"echo": settings.DB_ECHO}
    if not url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10, pool_pre_ping=True)
    return options


engine = create_async_engine(
    settings.DATABASE_URL_ASYNC, **_engine_options(settings.DATABASE_URL_ASYNC)
)

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()


async def initialize_database():
    """Create the account, session, challenge and notification tables.

    Existing tables are left untouched.

    Raises:
        Exception: Re-raises any error from the database driver.
    """

    # NOTE: Model modules register their tables on Base at import time.
    import models.auth  # noqa: F401
    import models.notifications  # noqa: F401

    logger.info("Creating missing tables on {}", engine.url.render_as_string(hide_password=True))
    async with engine.begin() as conn:
        try:
            await conn.run_sync(Base.metadata.create_all)
        except Exception:
            logger.exception("Table creation failed")
            raise
    logger.info("Database ready")


async def get_db():
    """Yield one `AsyncSession` per request, rolled back if the handler raises.

    Usage:
        db: AsyncSession = Depends(get_db)
    """

    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
