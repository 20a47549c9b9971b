"""Storage layer: shared PostgreSQL pool.

Table bootstrap lives in ``src.storage.schema``; it is not imported here
because every repository module imports this package.
"""

from src.storage.database import Database, close_database, get_database

__all__ = ["Database", "close_database", "get_database"]
