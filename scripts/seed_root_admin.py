"""
Seed Root Admin User

Creates (or promotes) the root admin account that reviews institution
signups. Identity stays with the external provider; this only sets the
platform role for the account's email.

Usage:
    ROOT_ADMIN_EMAIL=ops@example.org ROOT_ADMIN_NAME="Ops" python scripts/seed_root_admin.py
"""

import asyncio
import os
import sys

import fellowship.models  # noqa: F401 - registers every table
from fellowship.core.config import settings
from fellowship.core.database import Database
from fellowship.modules.users.models import UserRole
from fellowship.modules.users.repository import UserRepository


async def seed_root_admin() -> None:
    """Create the root admin user if it doesn't exist, or promote it."""

    email = os.environ.get("ROOT_ADMIN_EMAIL") or settings.root_admin_email
    name = os.environ.get("ROOT_ADMIN_NAME", "Root Admin")
    if not email:
        print("ROOT_ADMIN_EMAIL is not set")
        sys.exit(1)

    database = Database(settings.database_url)

    async with database.session() as db:
        existing_user = await UserRepository.get_by_email(db, email)

        if existing_user and existing_user.role == UserRole.ROOT_ADMIN:
            print(f"Root admin already exists: {existing_user.email}")
            print(f"  ID: {existing_user.id}")
            await database.dispose()
            return

        if existing_user:
            await UserRepository.update(db, existing_user, role=UserRole.ROOT_ADMIN)
            user = existing_user
            print("Existing user promoted to root admin")
        else:
            user = await UserRepository.create(
                db,
                email=email,
                name=name,
                role=UserRole.ROOT_ADMIN,
                is_placeholder=True,
            )
            print("Root admin created successfully!")

        await db.commit()

        print(f"  Email: {user.email}")
        print(f"  Name: {user.name}")
        print(f"  ID: {user.id}")
        print(f"  Role: {user.role.value}")

    await database.dispose()


if __name__ == "__main__":
    asyncio.run(seed_root_admin())
