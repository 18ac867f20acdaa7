"""
Mint a bearer token for local development and optionally ensure a profile row.

Usage:
    python -m app.scripts.create_dev_token --user-id <uuid> [--full-name "Ada"] [--hours 12]
"""

import argparse
import asyncio
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import create_access_token
from app.core.database import build_upsert, get_session_factory
from app.models.profile import Profile


async def ensure_profile(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: uuid.UUID,
    full_name: str,
) -> None:
    """Create the profile or update its name. Runs with service privileges."""
    async with session_factory() as session:
        stmt = build_upsert(
            session,
            Profile,
            {"id": user_id, "full_name": full_name},
            conflict_columns=("id",),
            update_columns=("full_name",),
        )
        await session.execute(stmt)
        await session.commit()


def mint_token(user_id: uuid.UUID, hours: float = 12) -> str:
    return create_access_token(user_id, expires_delta=timedelta(hours=hours))


async def main(user_id: uuid.UUID, full_name: Optional[str], hours: float) -> None:
    if full_name:
        await ensure_profile(get_session_factory(), user_id, full_name)
        print(f"Profile ensured for {user_id} ({full_name}).")

    print("--- DEV TOKEN ---")
    print(f"USER ID: {user_id}")
    print(f"TOKEN: {mint_token(user_id, hours)}")
    print("-----------------")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Mint a local development token.")
    parser.add_argument("--user-id", type=uuid.UUID, default=None, help="User id (random if omitted)")
    parser.add_argument("--full-name", default=None, help="Profile display name to upsert")
    parser.add_argument("--hours", type=float, default=12, help="Token lifetime in hours")

    args = parser.parse_args()

    asyncio.run(main(args.user_id or uuid.uuid4(), args.full_name, args.hours))
