"""Initial schema: organizations, memberships, profiles, sessions, messages, RLS.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

APP_ROLE = "authenticated"

RLS_TABLES = [
    "organization",
    "organization_members",
    "profiles",
    "message_session",
    "message_session_users",
    "message",
]

# Caller id as set by the persistence gateway for each transaction.
CALLER = "nullif(current_setting('request.jwt.claim.sub', true), '')::uuid"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Tables
    # -----------------------------------------------------------------------

    op.create_table(
        "organization",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
    )
    op.create_index("ix_organization_name", "organization", ["name"])

    op.create_table(
        "organization_members",
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("organization_id", "user_id"),
        sa.CheckConstraint("role IN ('owner', 'admin', 'member')", name="ck_organization_members_role"),
    )
    op.create_index("ix_organization_members_user_id", "organization_members", ["user_id"])

    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "message_session",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("last_message_sent", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_message_session_organization_id", "message_session", ["organization_id"])

    op.create_table(
        "message_session_users",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("message_session", postgresql.UUID(as_uuid=True), sa.ForeignKey("message_session.id"), nullable=False),
        sa.Column("role", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("user_id", "message_session"),
    )
    op.create_index("ix_message_session_users_user_id", "message_session_users", ["user_id"])

    op.create_table(
        "message",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("message_session_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("message_session.id"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        *_timestamps(),
    )
    op.create_index("ix_message_user_id", "message", ["user_id"])
    op.create_index("ix_message_session_timestamp", "message", ["message_session_id", "timestamp"])

    # -----------------------------------------------------------------------
    # 2. Membership helpers (SECURITY DEFINER avoids recursive policies)
    # -----------------------------------------------------------------------

    op.execute(f"""
        CREATE OR REPLACE FUNCTION app_is_org_member(org uuid) RETURNS boolean
        LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
            SELECT EXISTS (
                SELECT 1 FROM organization_members
                WHERE organization_id = org AND user_id = {CALLER}
            )
        $$;
    """)
    op.execute(f"""
        CREATE OR REPLACE FUNCTION app_is_session_member(sess uuid) RETURNS boolean
        LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
            SELECT EXISTS (
                SELECT 1 FROM message_session_users
                WHERE message_session = sess AND user_id = {CALLER}
            )
        $$;
    """)
    op.execute("""
        CREATE OR REPLACE FUNCTION app_session_org(sess uuid) RETURNS uuid
        LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
            SELECT organization_id FROM message_session WHERE id = sess
        $$;
    """)

    # -----------------------------------------------------------------------
    # 3. Row-level security
    # -----------------------------------------------------------------------

    op.execute(f"""
        DO $$ BEGIN
            IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{APP_ROLE}') THEN
                CREATE ROLE {APP_ROLE} NOLOGIN;
            END IF;
        END $$;
    """)

    for table in RLS_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"GRANT SELECT, INSERT, UPDATE ON {table} TO {APP_ROLE}")

    # Organizations are discoverable by id; anyone signed in may create one.
    op.execute(f"CREATE POLICY organization_select ON organization FOR SELECT TO {APP_ROLE} USING (true)")
    op.execute(f"CREATE POLICY organization_insert ON organization FOR INSERT TO {APP_ROLE} WITH CHECK ({CALLER} IS NOT NULL)")

    # Memberships: callers manage only their own row, and see co-members.
    op.execute(f"""
        CREATE POLICY organization_members_select ON organization_members FOR SELECT TO {APP_ROLE}
        USING (user_id = {CALLER} OR app_is_org_member(organization_id))
    """)
    op.execute(f"""
        CREATE POLICY organization_members_insert ON organization_members FOR INSERT TO {APP_ROLE}
        WITH CHECK (user_id = {CALLER})
    """)
    op.execute(f"""
        CREATE POLICY organization_members_update ON organization_members FOR UPDATE TO {APP_ROLE}
        USING (user_id = {CALLER}) WITH CHECK (user_id = {CALLER})
    """)

    op.execute(f"CREATE POLICY profiles_select ON profiles FOR SELECT TO {APP_ROLE} USING (true)")
    op.execute(f"""
        CREATE POLICY profiles_upsert ON profiles FOR ALL TO {APP_ROLE}
        USING (id = {CALLER}) WITH CHECK (id = {CALLER})
    """)

    # Sessions are created inside the caller's organization; invited session
    # members see them without joining the organization.
    op.execute(f"""
        CREATE POLICY message_session_select ON message_session FOR SELECT TO {APP_ROLE}
        USING (app_is_org_member(organization_id) OR app_is_session_member(id))
    """)
    op.execute(f"""
        CREATE POLICY message_session_insert ON message_session FOR INSERT TO {APP_ROLE}
        WITH CHECK (app_is_org_member(organization_id))
    """)
    op.execute(f"""
        CREATE POLICY message_session_update ON message_session FOR UPDATE TO {APP_ROLE}
        USING (app_is_session_member(id))
    """)

    op.execute(f"""
        CREATE POLICY message_session_users_select ON message_session_users FOR SELECT TO {APP_ROLE}
        USING (user_id = {CALLER} OR app_is_session_member(message_session))
    """)
    op.execute(f"""
        CREATE POLICY message_session_users_insert ON message_session_users FOR INSERT TO {APP_ROLE}
        WITH CHECK (app_is_org_member(app_session_org(message_session)))
    """)

    op.execute(f"""
        CREATE POLICY message_select ON message FOR SELECT TO {APP_ROLE}
        USING (app_is_session_member(message_session_id))
    """)
    op.execute(f"""
        CREATE POLICY message_insert ON message FOR INSERT TO {APP_ROLE}
        WITH CHECK (user_id = {CALLER} AND app_is_session_member(message_session_id))
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.drop_table("message")
    op.drop_table("message_session_users")
    op.drop_table("message_session")
    op.drop_table("profiles")
    op.drop_table("organization_members")
    op.drop_table("organization")
    op.execute("DROP FUNCTION IF EXISTS app_session_org(uuid)")
    op.execute("DROP FUNCTION IF EXISTS app_is_session_member(uuid)")
    op.execute("DROP FUNCTION IF EXISTS app_is_org_member(uuid)")
