"""
MigrationJournal - durable record of migration runs.

The journal stores two things:

- Journal events: an append-only log per migration run (started,
  provisioned, settled, rebalanced, finalized, failed).
- Pending-finalize markers: one per run whose legacy registry was
  rebalanced but whose finalization did not complete. ``resume_finalize``
  on the coordinator consumes them.

Implementations:
    - InMemoryMigrationJournal: for tests and dry runs
    - SQLAlchemyMigrationJournal: SQLAlchemy async engine; SQLite via
      aiosqlite or PostgreSQL via asyncpg

Usage:
    >>> engine = create_async_engine("sqlite+aiosqlite:///migrations.db")
    >>> journal = SQLAlchemyMigrationJournal(engine)
    >>> await journal.create_tables()
    >>> await journal.record(PoolProvisioned(migration_id=mid, expected_pool_index=3, tx_hash=h))
    >>> events = await journal.get_events(mid)
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import text

from poolmigrate.events import JournalEvent, PendingFinalize
from poolmigrate.observability import (
    ATTR_DB_SYSTEM,
    ATTR_EVENT_TYPE,
    ATTR_MIGRATION_ID,
    Tracer,
    create_tracer,
)
from poolmigrate.repositories._connection import JournalBind, dialect_name, journal_connection


@runtime_checkable
class MigrationJournal(Protocol):
    """
    Protocol for migration journal persistence.

    Implementations must ensure:
    - Events are immutable once written
    - Events of one migration are returned in recording order
    - At most one pending-finalize marker exists per migration
    """

    async def record(self, event: JournalEvent) -> None:
        """Append an event to its migration's log."""
        ...

    async def get_events(self, migration_id: UUID) -> list[JournalEvent]:
        """All events of a migration, in recording order."""
        ...

    async def save_pending(self, marker: PendingFinalize) -> None:
        """Store or replace the pending-finalize marker of a migration."""
        ...

    async def get_pending(self, migration_id: UUID) -> PendingFinalize | None:
        """The pending-finalize marker of a migration, if any."""
        ...

    async def list_pending(self) -> list[PendingFinalize]:
        """All pending-finalize markers, oldest first."""
        ...

    async def clear_pending(self, migration_id: UUID) -> None:
        """Remove the pending-finalize marker of a migration, if any."""
        ...


class InMemoryMigrationJournal:
    """
    In-memory implementation of the migration journal for testing.

    All data is lost when the process terminates.

    Example:
        >>> journal = InMemoryMigrationJournal()
        >>> await journal.record(event)
        >>> events = await journal.get_events(event.migration_id)
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._events: dict[UUID, list[JournalEvent]] = defaultdict(list)
        self._pending: dict[UUID, PendingFinalize] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    async def record(self, event: JournalEvent) -> None:
        with self._tracer.span(
            "poolmigrate.journal.record",
            {ATTR_MIGRATION_ID: str(event.migration_id), ATTR_EVENT_TYPE: event.event_type},
        ):
            async with self._lock:
                self._events[event.migration_id].append(event)

    async def get_events(self, migration_id: UUID) -> list[JournalEvent]:
        async with self._lock:
            return list(self._events.get(migration_id, []))

    async def save_pending(self, marker: PendingFinalize) -> None:
        async with self._lock:
            self._pending[marker.migration_id] = marker

    async def get_pending(self, migration_id: UUID) -> PendingFinalize | None:
        async with self._lock:
            return self._pending.get(migration_id)

    async def list_pending(self) -> list[PendingFinalize]:
        async with self._lock:
            return sorted(self._pending.values(), key=lambda m: m.created_at)

    async def clear_pending(self, migration_id: UUID) -> None:
        async with self._lock:
            self._pending.pop(migration_id, None)

    async def clear(self) -> None:
        """Clear all events and markers. Useful for test cleanup."""
        async with self._lock:
            self._events.clear()
            self._pending.clear()


class SQLAlchemyMigrationJournal:
    """
    SQLAlchemy implementation of the migration journal.

    Uses the ``pool_migration_events`` and ``pool_migration_pending_finalize``
    tables. Payloads are stored as JSON text so the same statements work on
    SQLite and PostgreSQL.

    Event sequence numbers are unique per migration: two writers that read
    the same count cannot both append, the second fails with an
    ``IntegrityError``.

    Example:
        >>> engine = create_async_engine("sqlite+aiosqlite:///migrations.db")
        >>> journal = SQLAlchemyMigrationJournal(engine)
        >>> await journal.create_tables()
    """

    def __init__(
        self,
        conn: JournalBind,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the journal.

        Args:
            conn: Database connection or engine
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self.conn = conn

    @property
    def _db_system(self) -> str:
        return dialect_name(self.conn)

    async def create_tables(self) -> None:
        """Create the journal tables if they do not exist."""
        statements = [
            text("""
                CREATE TABLE IF NOT EXISTS pool_migration_events (
                    event_id VARCHAR(36) PRIMARY KEY,
                    migration_id VARCHAR(36) NOT NULL,
                    sequence INTEGER NOT NULL,
                    event_type VARCHAR(100) NOT NULL,
                    payload TEXT NOT NULL,
                    occurred_at VARCHAR(40) NOT NULL
                )
            """),
            text("""
                CREATE UNIQUE INDEX IF NOT EXISTS ux_pool_migration_events_sequence
                ON pool_migration_events (migration_id, sequence)
            """),
            text("""
                CREATE TABLE IF NOT EXISTS pool_migration_pending_finalize (
                    migration_id VARCHAR(36) PRIMARY KEY,
                    payload TEXT NOT NULL,
                    created_at VARCHAR(40) NOT NULL
                )
            """),
        ]
        async with journal_connection(self.conn) as conn:
            for statement in statements:
                await conn.execute(statement)

    async def record(self, event: JournalEvent) -> None:
        with self._tracer.span(
            "poolmigrate.journal.record",
            {
                ATTR_MIGRATION_ID: str(event.migration_id),
                ATTR_EVENT_TYPE: event.event_type,
                ATTR_DB_SYSTEM: self._db_system,
            },
        ):
            sequence_query = text("""
                SELECT COUNT(*)
                FROM pool_migration_events
                WHERE migration_id = :migration_id
            """)
            insert_query = text("""
                INSERT INTO pool_migration_events
                    (event_id, migration_id, sequence, event_type, payload, occurred_at)
                VALUES (:event_id, :migration_id, :sequence, :event_type, :payload, :occurred_at)
            """)

            async with journal_connection(self.conn) as conn:
                result = await conn.execute(
                    sequence_query, {"migration_id": str(event.migration_id)}
                )
                sequence = int(result.scalar_one())
                await conn.execute(
                    insert_query,
                    {
                        "event_id": str(event.event_id),
                        "migration_id": str(event.migration_id),
                        "sequence": sequence,
                        "event_type": event.event_type,
                        "payload": event.model_dump_json(),
                        "occurred_at": event.occurred_at.isoformat(),
                    },
                )

    async def get_events(self, migration_id: UUID) -> list[JournalEvent]:
        query = text("""
            SELECT event_type, payload
            FROM pool_migration_events
            WHERE migration_id = :migration_id
            ORDER BY sequence ASC
        """)
        async with journal_connection(self.conn, write=False) as conn:
            result = await conn.execute(query, {"migration_id": str(migration_id)})
            rows = result.fetchall()
        return [JournalEvent.from_json(row[0], row[1]) for row in rows]

    async def save_pending(self, marker: PendingFinalize) -> None:
        with self._tracer.span(
            "poolmigrate.journal.save_pending",
            {ATTR_MIGRATION_ID: str(marker.migration_id), ATTR_DB_SYSTEM: self._db_system},
        ):
            query = text("""
                INSERT INTO pool_migration_pending_finalize (migration_id, payload, created_at)
                VALUES (:migration_id, :payload, :created_at)
                ON CONFLICT (migration_id) DO UPDATE
                SET payload = excluded.payload,
                    created_at = excluded.created_at
            """)
            async with journal_connection(self.conn) as conn:
                await conn.execute(
                    query,
                    {
                        "migration_id": str(marker.migration_id),
                        "payload": marker.model_dump_json(),
                        "created_at": marker.created_at.isoformat(),
                    },
                )

    async def get_pending(self, migration_id: UUID) -> PendingFinalize | None:
        query = text("""
            SELECT payload
            FROM pool_migration_pending_finalize
            WHERE migration_id = :migration_id
        """)
        async with journal_connection(self.conn, write=False) as conn:
            result = await conn.execute(query, {"migration_id": str(migration_id)})
            row = result.fetchone()
        return PendingFinalize.model_validate_json(row[0]) if row else None

    async def list_pending(self) -> list[PendingFinalize]:
        query = text("""
            SELECT payload
            FROM pool_migration_pending_finalize
            ORDER BY created_at ASC
        """)
        async with journal_connection(self.conn, write=False) as conn:
            result = await conn.execute(query)
            rows = result.fetchall()
        return [PendingFinalize.model_validate_json(row[0]) for row in rows]

    async def clear_pending(self, migration_id: UUID) -> None:
        query = text("""
            DELETE FROM pool_migration_pending_finalize
            WHERE migration_id = :migration_id
        """)
        async with journal_connection(self.conn) as conn:
            await conn.execute(query, {"migration_id": str(migration_id)})


__all__ = [
    "MigrationJournal",
    "InMemoryMigrationJournal",
    "SQLAlchemyMigrationJournal",
]
