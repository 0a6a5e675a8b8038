"""
Persistence for migration runs.

- **Journal**: append-only events per migration run and pending-finalize
  markers for runs stopped between rebalancing and finalization

Implementations:
- SQLAlchemy implementation (SQLite via aiosqlite, PostgreSQL via asyncpg)
- In-memory implementation for testing
"""

from poolmigrate.repositories.journal import (
    InMemoryMigrationJournal,
    MigrationJournal,
    SQLAlchemyMigrationJournal,
)

__all__ = [
    "MigrationJournal",
    "InMemoryMigrationJournal",
    "SQLAlchemyMigrationJournal",
]
