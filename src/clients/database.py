"""Dependency provider for the record store."""

from src.store.database import Database

_database: Database | None = None


def get_database() -> Database:
    """Get or create the Database singleton."""
    global _database
    if _database is None:
        _database = Database()
    return _database


async def close_database() -> None:
    """Dispose the engine on shutdown."""
    global _database
    if _database is not None:
        await _database.dispose()
        _database = None
