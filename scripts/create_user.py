#!/usr/bin/env python3
"""
Create a portal user.

There is no self-registration: administrators create engineer, supervisor
and admin accounts with this script.

Run with:
    python scripts/create_user.py --email jo@example.com --first-name Jo \
        --last-name Smith --rza 1234 --role ENGINEER
"""

import argparse
import asyncio
import getpass
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError
from sqlalchemy import select

from workshop_portal.api.deps import get_password_hash
from workshop_portal.database import async_session_maker, init_db
from workshop_portal.models.user import User
from workshop_portal.schemas.auth import UserCreate
from workshop_portal.security.rbac import Role


async def create_user(data: UserCreate) -> User:
    await init_db()
    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == data.email))
        if result.scalar_one_or_none():
            raise SystemExit(f"A user with email {data.email} already exists")

        user = User(
            email=data.email,
            hashed_password=get_password_hash(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            rza_number=data.rza_number,
            role=data.role.value,
            is_active=True,
        )
        db.add(user)
        await db.commit()
        return user


def main():
    parser = argparse.ArgumentParser(description="Create a workshop portal user")
    parser.add_argument("--email", required=True)
    parser.add_argument("--first-name")
    parser.add_argument("--last-name")
    parser.add_argument("--rza", dest="rza_number", help="Employee (RZA) number")
    parser.add_argument("--role", choices=[r.value for r in Role], default=Role.ENGINEER.value)
    parser.add_argument("--password", help="Prompted for when omitted")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    try:
        data = UserCreate(
            email=args.email,
            password=password,
            first_name=args.first_name,
            last_name=args.last_name,
            rza_number=args.rza_number,
            role=Role(args.role),
        )
    except ValidationError as e:
        raise SystemExit(f"Invalid user details:\n{e}")

    user = asyncio.run(create_user(data))
    print(f"Created {user.role} {user.email} (id={user.id})")


if __name__ == "__main__":
    main()
