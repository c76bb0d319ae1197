"""
Script to create (or promote) a platform super admin for local testing.
"""

import asyncio
import argparse
import sys

from sqlmodel import select

# Add the project root to sys.path to allow importing from 'app'
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from app.core.auth import hash_password
from app.core.database import get_session_context
from app.models.user import User


async def create_admin(email: str, password: str, full_name: str):
    email = email.strip().lower()

    async with get_session_context() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if not user:
            user = User(
                email=email,
                full_name=full_name,
                password_hash=hash_password(password),
                is_super_admin=True,
            )
            session.add(user)
            print(f"Created super admin: {email}")
        else:
            user.is_super_admin = True
            user.password_hash = hash_password(password)
            print(f"User {email} already exists; promoted to super admin and password reset.")

    print("Done.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local super admin user.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--name", default="Administrador", help="Full name for the user")

    args = parser.parse_args()

    asyncio.run(create_admin(args.email, args.password, args.name))
