"""Create the first admin account.

Usage: python scripts/create_admin.py <username> <email> <full name>
The password is read from the ADMIN_PASSWORD environment variable or prompted for.
"""

import asyncio
import getpass
import os
import sys

from app.core.exceptions import ConflictException
from app.database import AsyncSessionLocal, engine
from app.schemas.auth import StaffCreate
from app.schemas.enums import StaffRole
from app.services.auth_service import AuthService


async def create_admin(username: str, email: str, full_name: str, password: str) -> int:
    """Insert an admin staff account."""
    data = StaffCreate(
        username=username,
        email=email,
        password=password,
        full_name=full_name,
        role=StaffRole.ADMIN,
    )

    async with AsyncSessionLocal() as db:
        try:
            admin = await AuthService.create_staff(db, data)
        except ConflictException as e:
            print(f"✗ {e.message}", file=sys.stderr)
            return 1

    await engine.dispose()
    print(f"✓ Admin account created: {admin['username']} ({admin['id']})")
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 4:
        print("Usage: python scripts/create_admin.py <username> <email> <full name>")
        sys.exit(1)

    password = os.getenv("ADMIN_PASSWORD") or getpass.getpass("Password: ")
    sys.exit(
        asyncio.run(create_admin(sys.argv[1], sys.argv[2], " ".join(sys.argv[3:]), password))
    )
