"""
Database Module - Opinion Analysis

Async SQLAlchemy access for projects, opinions, topics and analysis state.

Structure:
    database/
    ├── __init__.py      # This file - public API
    ├── session.py       # Engine and session management
    ├── init.py          # Schema initialization utilities
    └── models/          # ORM models

Usage:
    from database import init_database, get_session
    from repositories import OpinionRepository

    await init_database()
    async with get_session() as session:
        backlog = await OpinionRepository(session).get_unanalyzed(project_id)
"""

from .session import (
    init_engine,
    close_engine,
    create_tables,
    get_session,
    get_database_url,
)
from .init import init_database

__all__ = [
    "init_engine",
    "close_engine",
    "create_tables",
    "get_session",
    "get_database_url",
    "init_database",
]
