"""
Shared fixtures: a throwaway SQLite database per test, an ASGI client wired to
it, and helpers for minting tokens and seeding profiles.
"""

from __future__ import annotations

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import Identity, create_access_token, verify_access_token
from app.core.database import (
    PersistenceGateway,
    build_upsert,
    create_engine_for,
    get_session_factory,
    init_db,
)
from app.main import app
from app.models.profile import Profile


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'orgchat.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """A plain session for service-level tests and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def user_a():
    return uuid.uuid4()


@pytest.fixture
def user_b():
    return uuid.uuid4()


@pytest.fixture
def headers_for():
    def _headers(user_id: uuid.UUID) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest.fixture
def gateway_for(session_factory):
    def _gateway(user_id: uuid.UUID) -> PersistenceGateway:
        identity: Identity = verify_access_token(create_access_token(user_id))
        return PersistenceGateway(identity, session_factory)

    return _gateway


@pytest.fixture
def add_profile(session_factory):
    async def _add(user_id: uuid.UUID, full_name: str | None) -> None:
        async with session_factory() as session:
            await session.execute(
                build_upsert(
                    session,
                    Profile,
                    {"id": user_id, "full_name": full_name},
                    conflict_columns=("id",),
                    update_columns=("full_name",),
                )
            )
            await session.commit()

    return _add
