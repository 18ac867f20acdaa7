"""
Tests for message sessions and messages.

Tests cover:
- POST /sessions (caller always a member, deduplication, validation)
- Concurrent member fan-out and its partial-failure behaviour
- GET /sessions (no storage-internal role exposed)
- POST /sessions/message (membership required, last message tracking)
- GET /sessions/{sessionId} (chronological order, profile enrichment)
- Input validation happens before any transaction is opened
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import func, select

from app.core.database import PersistenceGateway, init_db
from app.core.errors import PersistenceError
from app.models.message import Message
from app.models.message_session import MessageSession, SessionMember
from app.services import messaging as messaging_service


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.fixture
async def org_id(client, headers_for, user_a):
    response = await client.post(
        "/organization", json={"name": "Cleanup Crew"}, headers=headers_for(user_a)
    )
    return response.json()["id"]


@pytest.fixture
async def session_id(client, headers_for, user_a, user_b, org_id):
    response = await client.post(
        "/sessions",
        json={"organizationId": org_id, "users": [str(user_b)], "title": "Planning"},
        headers=headers_for(user_a),
    )
    assert response.status_code == 200
    return response.json()["id"]


async def _members(db, session_id) -> set[uuid.UUID]:
    rows = await db.execute(
        select(SessionMember.user_id).where(SessionMember.message_session == uuid.UUID(session_id))
    )
    return set(rows.scalars().all())


# ---------------------------------------------------------------------------
# POST /sessions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_session(client, headers_for, user_a, user_b, org_id, db):
    response = await client.post(
        "/sessions",
        json={"organizationId": org_id, "users": [str(user_b)], "title": "Planning"},
        headers=headers_for(user_a),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["organization_id"] == org_id
    assert data["title"] == "Planning"
    assert data["last_message_sent"] is None
    assert await _members(db, data["id"]) == {user_a, user_b}


@pytest.mark.asyncio
async def test_caller_added_even_when_not_listed(client, headers_for, user_a, org_id, db):
    response = await client.post(
        "/sessions",
        json={"organizationId": org_id, "users": [], "title": "Solo"},
        headers=headers_for(user_a),
    )
    assert response.status_code == 200
    assert await _members(db, response.json()["id"]) == {user_a}


@pytest.mark.asyncio
async def test_duplicate_users_collapse(client, headers_for, user_a, user_b, org_id, db):
    response = await client.post(
        "/sessions",
        json={
            "organizationId": org_id,
            "users": [str(user_b), str(user_b), str(user_a), ""],
            "title": "Planning",
        },
        headers=headers_for(user_a),
    )
    assert response.status_code == 200
    assert await _members(db, response.json()["id"]) == {user_a, user_b}
    assert await _count(db, SessionMember) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,error",
    [
        ({"title": None}, "title is required"),
        ({"title": "   "}, "title is required"),
        ({"organizationId": None}, "organizationId is required"),
        ({"organizationId": "abc"}, "organizationId must be a valid id"),
        ({"users": "everyone"}, "users must be a list of user ids"),
        ({"users": ["abc"]}, "users must contain valid user ids"),
    ],
)
async def test_create_session_validation(client, headers_for, user_a, org_id, db, overrides, error):
    body = {"organizationId": org_id, "users": [], "title": "Planning", **overrides}
    response = await client.post("/sessions", json=body, headers=headers_for(user_a))
    assert response.status_code == 400
    assert response.json() == {"error": error}
    assert await _count(db, MessageSession) == 0


@pytest.mark.asyncio
async def test_create_session_unknown_organization(client, headers_for, user_a, db):
    response = await client.post(
        "/sessions",
        json={"organizationId": str(uuid.uuid4()), "users": [], "title": "Planning"},
        headers=headers_for(user_a),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Failed to create session"}
    assert await _count(db, MessageSession) == 0
    assert await _count(db, SessionMember) == 0


# ---------------------------------------------------------------------------
# Member fan-out
# ---------------------------------------------------------------------------

class TestAddMembers:
    @pytest.mark.asyncio
    async def test_adding_twice_is_a_no_op(self, gateway_for, user_a, user_b, session_id, db):
        gateway = gateway_for(user_a)
        await messaging_service.add_members({user_a, user_b}, uuid.UUID(session_id), gateway)
        assert await _count(db, SessionMember) == 2

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_successful_inserts(
        self, gateway_for, user_a, session_id, db, monkeypatch
    ):
        failing_user = uuid.uuid4()
        added_user = uuid.uuid4()
        original = messaging_service.add_member

        async def flaky_add_member(user_id, sid, session):
            if user_id == failing_user:
                raise PersistenceError(detail="simulated")
            await original(user_id, sid, session)

        monkeypatch.setattr(messaging_service, "add_member", flaky_add_member)

        with pytest.raises(PersistenceError):
            await messaging_service.add_members(
                [failing_user, added_user], uuid.UUID(session_id), gateway_for(user_a)
            )

        members = await _members(db, session_id)
        assert added_user in members
        assert failing_user not in members


# ---------------------------------------------------------------------------
# GET /sessions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_sessions(client, headers_for, user_b, session_id):
    response = await client.get("/sessions", headers=headers_for(user_b))
    assert response.status_code == 200
    [membership] = response.json()
    assert membership["user_id"] == str(user_b)
    assert membership["message_session"]["id"] == session_id
    assert membership["message_session"]["title"] == "Planning"
    assert "role" not in membership


@pytest.mark.asyncio
async def test_list_sessions_hides_role_even_when_stored(
    client, headers_for, user_b, session_id, db
):
    member = await db.get(SessionMember, (user_b, uuid.UUID(session_id)))
    member.role = "moderator"
    await db.commit()

    response = await client.get("/sessions", headers=headers_for(user_b))
    assert "role" not in response.json()[0]


@pytest.mark.asyncio
async def test_list_sessions_for_outsider(client, headers_for, session_id):
    response = await client.get("/sessions", headers=headers_for(uuid.uuid4()))
    assert response.status_code == 200
    assert response.json() == []


# ---------------------------------------------------------------------------
# POST /sessions/message
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_message(client, headers_for, user_b, session_id, db):
    response = await client.post(
        "/sessions/message",
        json={"sessionId": session_id, "content": "Let's meet Saturday"},
        headers=headers_for(user_b),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Let's meet Saturday"
    assert data["user_id"] == str(user_b)
    assert data["message_session_id"] == session_id
    assert "timestamp" in data

    message_session = await db.get(MessageSession, uuid.UUID(session_id))
    assert message_session.last_message_sent == "Let's meet Saturday"


@pytest.mark.asyncio
async def test_non_member_cannot_post(client, headers_for, session_id, db):
    response = await client.post(
        "/sessions/message",
        json={"sessionId": session_id, "content": "hello?"},
        headers=headers_for(uuid.uuid4()),
    )
    assert response.status_code == 403
    assert response.json() == {"error": "You are not a member of this session"}
    assert await _count(db, Message) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body,error",
    [
        ({"content": "hi"}, "sessionId is required"),
        ({"sessionId": "abc", "content": "hi"}, "sessionId must be a valid id"),
        ({"content": ""}, "content is required"),
        ({"content": "   "}, "content is required"),
        ({}, "content is required"),
    ],
)
async def test_create_message_validation(client, headers_for, user_a, session_id, db, body, error):
    if "sessionId" not in body and error != "sessionId is required":
        body = {"sessionId": session_id, **body}
    response = await client.post("/sessions/message", json=body, headers=headers_for(user_a))
    assert response.status_code == 400
    assert response.json() == {"error": error}
    assert await _count(db, Message) == 0
    message_session = await db.get(MessageSession, uuid.UUID(session_id))
    assert message_session.last_message_sent is None


@pytest.mark.asyncio
async def test_last_message_tracks_latest(client, headers_for, user_a, user_b, session_id, db):
    for user_id, content in [(user_a, "first"), (user_b, "second")]:
        await client.post(
            "/sessions/message",
            json={"sessionId": session_id, "content": content},
            headers=headers_for(user_id),
        )
    message_session = await db.get(MessageSession, uuid.UUID(session_id))
    assert message_session.last_message_sent == "second"


@pytest.mark.asyncio
async def test_concurrent_messages_all_stored(client, headers_for, user_a, session_id):
    headers = headers_for(user_a)
    contents = [f"message {i}" for i in range(5)]
    responses = await asyncio.gather(
        *(
            client.post(
                "/sessions/message",
                json={"sessionId": session_id, "content": content},
                headers=headers,
            )
            for content in contents
        )
    )
    assert all(response.status_code == 200 for response in responses)

    history = (await client.get(f"/sessions/{session_id}", headers=headers)).json()
    assert sorted(item["message"] for item in history) == sorted(contents)

    timestamps = [datetime.fromisoformat(item["timestamp"]) for item in history]
    assert timestamps == sorted(timestamps)

    sessions = (await client.get("/sessions", headers=headers)).json()
    assert sessions[0]["message_session"]["last_message_sent"] in contents


# ---------------------------------------------------------------------------
# Last message tracking
# ---------------------------------------------------------------------------

class TestLastMessageUpdate:
    @pytest.mark.asyncio
    async def test_message_rolled_back_when_session_row_not_updated(self, tmp_path, user_a):
        # Foreign keys are off on this engine, so the membership can reference
        # a session row that does not exist.
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'nofk.db'}")
        await init_db(engine)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        hidden_session_id = uuid.uuid4()

        try:
            async with factory() as session:
                session.add(SessionMember(user_id=user_a, message_session=hidden_session_id))
                await session.commit()

            async with factory() as session:
                with pytest.raises(PersistenceError) as exc_info:
                    await messaging_service.create_message(
                        hidden_session_id, user_a, "Let's meet Saturday", session
                    )
                assert "matched 0 rows" in exc_info.value.detail
                await session.rollback()
                assert await _count(session, Message) == 0
        finally:
            await engine.dispose()


# ---------------------------------------------------------------------------
# GET /sessions/{sessionId}
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_messages_in_order_with_profiles(
    client, headers_for, add_profile, user_a, user_b, session_id
):
    await add_profile(user_a, "Ada Lovelace")
    for user_id, content in [(user_a, "one"), (user_b, "two"), (user_a, "three")]:
        response = await client.post(
            "/sessions/message",
            json={"sessionId": session_id, "content": content},
            headers=headers_for(user_id),
        )
        assert response.status_code == 200

    response = await client.get(f"/sessions/{session_id}", headers=headers_for(user_b))
    assert response.status_code == 200
    messages = response.json()
    assert [item["message"] for item in messages] == ["one", "two", "three"]

    assert messages[0]["profile_id"] == str(user_a)
    assert messages[0]["profile_full_name"] == "Ada Lovelace"
    assert "profile_id" not in messages[1]
    assert "profile_full_name" not in messages[1]


@pytest.mark.asyncio
async def test_list_messages_empty_session(client, headers_for, user_a, session_id):
    response = await client.get(f"/sessions/{session_id}", headers=headers_for(user_a))
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_list_messages_malformed_id(client, headers_for, user_a):
    response = await client.get("/sessions/not-an-id", headers=headers_for(user_a))
    assert response.status_code == 400
    assert response.json() == {"error": "sessionId must be a valid id"}


# ---------------------------------------------------------------------------
# Validation ordering
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method,path,body",
    [
        ("POST", "/organization", {"name": "  "}),
        ("POST", "/organization/member", {"organizationId": "abc"}),
        ("GET", "/organization/not-an-id/users", None),
        ("POST", "/sessions", {"organizationId": "abc", "users": [], "title": "Planning"}),
        ("POST", "/sessions/message", {"sessionId": "abc", "content": "hi"}),
        ("POST", "/sessions/message", {"sessionId": str(uuid.uuid4()), "content": " "}),
        ("GET", "/sessions/not-an-id", None),
    ],
)
async def test_invalid_input_never_opens_a_transaction(
    client, headers_for, user_a, monkeypatch, method, path, body
):
    opened = []

    async def record_scope(self, session):
        opened.append(self.user_id)

    monkeypatch.setattr(PersistenceGateway, "_apply_caller_scope", record_scope)

    response = await client.request(method, path, json=body, headers=headers_for(user_a))
    assert response.status_code == 400
    assert opened == []
