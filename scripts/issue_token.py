#!/usr/bin/env python3
"""CLI script to issue credentials for a user.

Usage:
    uv run python scripts/issue_token.py --user-id 42
    uv run python scripts/issue_token.py --user-id 42 --name "Jane" --hours 1
    uv run python scripts/issue_token.py --user-id 42 --api-key "ci runner"

User onboarding happens outside this service, so operators mint JWTs
here. With --api-key, a named API key is also created in the database
(DATABASE_URL from environment or .env file) and printed once.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import timedelta

# Ensure project root is on sys.path so we can import src.bissy
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def create_api_key(user_id: str, name: str) -> None:
    """Create an API key through the SQL store and print it."""
    from src.bissy.apikeys.repository import APIKeyRepository
    from src.bissy.apikeys.schemas import APIKeyCreate
    from src.bissy.core.database import close_db, get_session, init_db

    await init_db()
    try:
        new_key = await APIKeyRepository(session_factory=get_session).create(
            user_id, APIKeyCreate(name=name)
        )
    finally:
        await close_db()

    print("API key created (shown once):")
    print(f"  ID:   {new_key.id}")
    print(f"  Name: {new_key.name}")
    print(f"  Key:  {new_key.key}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a JWT (and optionally an API key) for a user")
    parser.add_argument("--user-id", required=True, help="User id placed in the token subject")
    parser.add_argument("--name", default=None, help="Display name claim")
    parser.add_argument("--hours", type=int, default=None, help="Lifetime in hours (default: JWT_EXPIRE_HOURS)")
    parser.add_argument("--api-key", default=None, metavar="NAME", help="Also create an API key with this name")
    args = parser.parse_args()

    if args.hours is not None and args.hours < 1:
        parser.error("--hours must be at least 1")

    from src.bissy.core.security import create_access_token

    expires = timedelta(hours=args.hours) if args.hours else None
    print(create_access_token(args.user_id, name=args.name, expires_delta=expires))

    if args.api_key:
        asyncio.run(create_api_key(args.user_id, args.api_key))


if __name__ == "__main__":
    main()
