"""Relational persistence for defenses."""

from .models import (
    Defense,
    DefenseHistory,
    DefenseAction,
    Base,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    create_tables,
    get_async_session_factory,
    get_db_context,
    DEFAULT_DATABASE_URL,
)
from .repository import (
    DefenseRepository,
    DefenseHistoryRepository,
)

__all__ = [
    # Models
    "Defense",
    "DefenseHistory",
    "DefenseAction",
    "Base",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "create_tables",
    "get_async_session_factory",
    "get_db_context",
    "DEFAULT_DATABASE_URL",
    # Repositories
    "DefenseRepository",
    "DefenseHistoryRepository",
]
