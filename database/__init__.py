"""
Database Package Initialization.

============================================================
DECISION PIPELINE PERSISTENCE LAYER
============================================================

Shared SQLAlchemy base, engine and transaction helpers.
Repositories live next to their domain package
(decision_pipeline.repository, stock_transfers.repository).

============================================================
"""

from .engine import (
    # Declarative base
    Base,
    DEFAULT_DATABASE_URL,
    # Engine creation
    get_database_url,
    create_database_engine,
    configure_database,
    get_engine,
    # Session management
    get_session_factory,
    transaction_scope,
    # Initialization
    create_all_tables,
    list_missing_tables,
)

__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "configure_database",
    "get_engine",
    "get_session_factory",
    "transaction_scope",
    "create_all_tables",
    "list_missing_tables",
]
