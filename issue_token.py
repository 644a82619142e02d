#!/usr/bin/env python3
"""
Access Token Issuer
Creates (or looks up) a user by email and prints a signed access token for it.
Use it to bootstrap the first admin and to get tokens for scripts.

    python issue_token.py admin@example.com --role admin
"""
import argparse
import asyncio
import sys
from datetime import timedelta

from sqlalchemy import select

from atelier.database import AsyncSessionLocal, init_db
from atelier.models import ROLES, User
from atelier.utils.jwt_auth import create_access_token


async def issue(email: str, role: str, days: int) -> str:
    await init_db()
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None:
            user = User(email=email, role=role)
            session.add(user)
            print(f"Creating {role} user {email}")
        elif user.role != role:
            print(f"Changing role of {email}: {user.role} -> {role}")
            user.role = role

        await session.commit()
        await session.refresh(user)
        return create_access_token(user.id, expires_delta=timedelta(days=days))


def main():
    parser = argparse.ArgumentParser(description="Issue an access token for a user")
    parser.add_argument("email")
    parser.add_argument("--role", default="admin", choices=ROLES)
    parser.add_argument("--days", type=int, default=30, help="Token lifetime in days")
    args = parser.parse_args()

    try:
        token = asyncio.run(issue(args.email, args.role, args.days))
    except Exception as e:
        print(f"\nError: {str(e)}", file=sys.stderr)
        sys.exit(1)

    print("\nSend this as 'Authorization: Bearer <token>' or set it as the access_token cookie:\n")
    print(token)


if __name__ == "__main__":
    main()
