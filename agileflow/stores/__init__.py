from .memory import InMemoryStore, build_memory_stores
from .sql import SqlAlchemyStore, build_sql_stores

__all__ = [
    "InMemoryStore",
    "SqlAlchemyStore",
    "build_memory_stores",
    "build_sql_stores",
]
