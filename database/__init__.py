"""
Database Package Initialization.

============================================================
ASSESSMENT PERSISTENCE LAYER
============================================================

Engine, session and transaction management for the risk
engine's SQL store. ORM models live in risk_engine.models
and register themselves with Base.

REQUIRED:
- Every failure raises hard exceptions
- All transactions are explicit with commit/rollback

============================================================
"""

from .engine import (
    # Declarative base
    Base,

    # Engine creation
    DEFAULT_DATABASE_URL,
    get_database_url,
    create_database_engine,
    get_engine,

    # Session management
    create_session_factory,
    get_session_factory,
    transaction_scope,

    # Database initialization
    initialize_database,
    verify_database_connection,
    create_all_tables,

    # Exceptions
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)

__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "get_engine",
    "create_session_factory",
    "get_session_factory",
    "transaction_scope",
    "initialize_database",
    "verify_database_connection",
    "create_all_tables",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
