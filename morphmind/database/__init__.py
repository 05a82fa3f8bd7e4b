"""
Database module for MorphMind

Provides:
- SQLAlchemy models
- Engine and session management
- Ledger repositories (storage collaborator)
"""

from .models import Base, UserRecord, PositionRecord, SourceRecord
from .connection import build_engine, session_scope, init_db
from .repository import (
    LedgerRepository,
    InMemoryRepository,
    SqlLedgerRepository,
    USERS,
    POSITIONS,
    SOURCES,
    COLLECTIONS,
)

__all__ = [
    "Base",
    "UserRecord",
    "PositionRecord",
    "SourceRecord",
    "build_engine",
    "session_scope",
    "init_db",
    "LedgerRepository",
    "InMemoryRepository",
    "SqlLedgerRepository",
    "USERS",
    "POSITIONS",
    "SOURCES",
    "COLLECTIONS",
]
