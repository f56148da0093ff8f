"""
Record store for clients, projects and tasks.

Handles:
- SQL connection management (PostgreSQL via asyncpg)
- Versioned record storage with optimistic concurrency
- In-memory store for single-node deployments and tests
"""

from .connection import (
    get_database,
    Database,
    init_database,
    close_database,
)
from .models import Base, RecordDB
from .exceptions import (
    DatabaseError,
    DatabaseConnectionError,
    DatabaseOperationError,
    EntityNotFoundError,
    RecordConflictError,
    ValidationError,
)

__all__ = [
    "get_database",
    "Database",
    "init_database",
    "close_database",
    "Base",
    "RecordDB",
    "DatabaseError",
    "DatabaseConnectionError",
    "DatabaseOperationError",
    "EntityNotFoundError",
    "RecordConflictError",
    "ValidationError",
]
