"""
Closure Store backends for Lineage.

- ClosureStore / ClosureTransaction: abstract storage interface
- SQLAlchemyClosureStore: any SQLAlchemy-compatible database (registered as "sqlalchemy")

Example:
    >>> from lineage.store import create_closure_store
    >>> store = create_closure_store("sqlalchemy", url="sqlite:///hierarchy.db")
"""

from .base import (
    ClosureStore,
    ClosureTransaction,
    register_store,
    get_registered_stores,
    create_closure_store,
)
from .sqlalchemy_store import (
    SQLAlchemyClosureStore,
    SQLAlchemyClosureTransaction,
    create_engine_for_url,
    key_column_type,
    normalize_key,
)

__all__ = [
    "ClosureStore",
    "ClosureTransaction",
    "register_store",
    "get_registered_stores",
    "create_closure_store",
    "SQLAlchemyClosureStore",
    "SQLAlchemyClosureTransaction",
    "create_engine_for_url",
    "key_column_type",
    "normalize_key",
]
