"""Database session and record store utilities."""

from realty_corridor.db.session import (
    dispose_engine,
    get_engine,
    get_sessionmaker,
    get_store,
    session_context,
    store_context,
)
from realty_corridor.db.store import (
    CatalogStore,
    Collection,
    InMemoryStore,
    SqlAlchemyStore,
)

__all__ = [
    "CatalogStore",
    "Collection",
    "InMemoryStore",
    "SqlAlchemyStore",
    "dispose_engine",
    "get_engine",
    "get_sessionmaker",
    "get_store",
    "session_context",
    "store_context",
]
