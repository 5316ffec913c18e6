"""Database engine and session management"""
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from app.core.config import settings


Base = declarative_base()


def create_engine_and_sessionmaker(database_url: str, echo: bool = False):
    """Create an async engine plus the session factory bound to it"""
    engine = create_async_engine(database_url, echo=echo)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, session_factory


engine, AsyncSessionLocal = create_engine_and_sessionmaker(
    settings.DATABASE_URL, echo=settings.DATABASE_ECHO
)


async def create_tables(target_engine=None):
    """Create all database tables"""
    import app.models  # noqa: F401  Register all models

    async with (target_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
