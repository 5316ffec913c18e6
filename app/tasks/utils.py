"""Shared utilities for Celery tasks"""
from app.core.config import settings
from app.core.database import create_engine_and_sessionmaker


def create_task_db_session():
    """
    Create a new database engine and session factory for use in Celery tasks.

    Each Celery task runs its own event loop (via asyncio.run()), and async
    engine connections are bound to the loop that opened them, so the global
    engine from app.core.database cannot be reused here.
    """
    return create_engine_and_sessionmaker(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
