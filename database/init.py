"""
Database Initialization and Utilities

Async helper that prepares the database for a run.
"""
from typing import Optional

from loguru import logger

from config import ensure_directories
from .session import init_engine, create_tables


async def init_database(database_url: Optional[str] = None) -> None:
    """
    Initialize the database engine and create all tables.

    Args:
        database_url: Optional override of the configured database URL
    """
    if database_url is None:
        ensure_directories()
    await init_engine(database_url)
    await create_tables()
    logger.info("Database schema ready")
