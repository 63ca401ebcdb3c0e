from collections.abc import AsyncGenerator
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


class Base(DeclarativeBase):
    pass


engine = create_async_engine(settings.database_url, echo=settings.database_echo)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


def import_models():
    """Register every table on Base.metadata before create_all runs."""
    from db import users, preferences  # noqa: F401
    from db.inventory import item, adjustment  # noqa: F401


async def create_db_and_tables(bind: AsyncEngine = engine):
    import_models()
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_database(bind: AsyncEngine = engine) -> None:
    async with bind.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session
