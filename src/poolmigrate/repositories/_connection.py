"""
Engine-or-connection handling for the SQL journal.

The journal can be bound to an ``AsyncEngine``, in which case it manages its
own connections, or to an ``AsyncConnection`` owned by the caller, in which
case it runs inside the caller's transaction.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TypeAlias

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

JournalBind: TypeAlias = AsyncConnection | AsyncEngine


@asynccontextmanager
async def journal_connection(
    bind: JournalBind,
    *,
    write: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection for one journal operation.

    Writes on an engine run in their own transaction, committed on exit and
    rolled back on error. Reads on an engine use a plain connection. A
    caller-owned connection is yielded as is and ``write`` is ignored.
    """
    if not isinstance(bind, AsyncEngine):
        yield bind
        return

    opener = bind.begin if write else bind.connect
    async with opener() as connection:
        yield connection


def dialect_name(bind: JournalBind) -> str:
    """Database dialect behind ``bind`` ("sqlite", "postgresql", ...)."""
    engine = bind if isinstance(bind, AsyncEngine) else bind.engine
    return engine.dialect.name
