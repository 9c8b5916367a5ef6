"""Database session and metadata helpers."""

from .session import Base, Database, get_database, get_session

__all__ = [
    "Base",
    "Database",
    "get_database",
    "get_session",
]
