"""
Database connection management and the per-request persistence gateway.

The engine and session factory are process-wide. Everything that touches
data goes through a `PersistenceGateway`, which is built per request from
the caller's `Identity` so that row-level security policies in the hosted
Postgres see the caller, not the service.
"""

from __future__ import annotations

import json
import re
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog
from fastapi import Depends
from sqlalchemy import event, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.core.auth import Identity, get_identity
from app.core.config import get_settings
from app.core.errors import PersistenceError

log = structlog.get_logger()

_ROLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


# ---------------------------------------------------------------------------
# Engine & session factory
# ---------------------------------------------------------------------------

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite engines enforce foreign keys like Postgres."""
    engine = create_async_engine(url, echo=echo, future=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for(settings.database_url, echo=settings.database_echo)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency (and plain accessor) for the session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables (development only — use migrations in production)."""
    import app.models  # noqa: F401

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------

def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


def build_upsert(
    session: AsyncSession,
    model: type[SQLModel],
    values: Mapping[str, Any],
    conflict_columns: Iterable[str],
    update_columns: Optional[Iterable[str]] = None,
):
    """INSERT ... ON CONFLICT keyed by the natural composite key.

    `update_columns=None` means insert-or-no-op; otherwise the listed columns
    are overwritten from the incoming row on conflict.
    """
    name = dialect_name(session)
    if name == "postgresql":
        insert = postgresql.insert
    elif name == "sqlite":
        insert = sqlite.insert
    else:
        raise PersistenceError(f"upsert is not supported on dialect {name!r}")

    stmt = insert(model).values(**values)
    index_elements = list(conflict_columns)
    if update_columns is None:
        return stmt.on_conflict_do_nothing(index_elements=index_elements)
    return stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={column: stmt.excluded[column] for column in update_columns},
    )


# ---------------------------------------------------------------------------
# Persistence gateway
# ---------------------------------------------------------------------------

class PersistenceGateway:
    """Caller-scoped access to the store.

    Each `session()` block is one transaction. Blocks are independent, so
    several can run concurrently for fan-out writes.
    """

    def __init__(
        self,
        identity: Identity,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.identity = identity
        self._session_factory = session_factory

    @property
    def user_id(self):
        return self.identity.user_id

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                await self._apply_caller_scope(session)
                yield session
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                log.error(
                    "persistence.error",
                    user_id=str(self.identity.user_id),
                    error_type=type(exc).__name__,
                    detail=str(exc),
                )
                raise PersistenceError(detail=str(exc)) from exc
            except Exception:
                await session.rollback()
                raise

    async def _apply_caller_scope(self, session: AsyncSession) -> None:
        """Hand the caller's claims to the store for row-level policies (Postgres only)."""
        settings = get_settings()
        if not settings.apply_rls or dialect_name(session) != "postgresql":
            return
        if not _ROLE_NAME.match(settings.db_role):
            raise PersistenceError(detail=f"invalid database role {settings.db_role!r}")

        claims = json.dumps(self.identity.claims, default=str)
        await session.execute(
            text("SELECT set_config('request.jwt.claims', :claims, true)"),
            {"claims": claims},
        )
        await session.execute(
            text("SELECT set_config('request.jwt.claim.sub', :sub, true)"),
            {"sub": str(self.identity.user_id)},
        )
        # Role names cannot be bound parameters.
        await session.execute(text(f"SET LOCAL ROLE {settings.db_role}"))


async def get_gateway(
    identity: Identity = Depends(get_identity),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> PersistenceGateway:
    """FastAPI dependency: a fresh gateway scoped to the authenticated caller."""
    return PersistenceGateway(identity, session_factory)
