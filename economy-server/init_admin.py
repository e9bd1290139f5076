"""
Create the default admin user and print a bearer token for it.
Useful on a fresh development database before the auth service is wired in.
"""
import asyncio

from sqlalchemy import select

from rubis.core.security import create_access_token
from rubis.db.models import User
from rubis.infrastructure.database.session import init_db, transaction


async def create_default_admin(username: str = "admin") -> None:
    await init_db()

    async with transaction() as session:
        result = await session.execute(select(User).where(User.username == username))
        admin = result.scalar_one_or_none()
        if admin is None:
            admin = User(username=username, role="admin", rubis=0)
            session.add(admin)
            await session.flush()
            print(f"Admin user created: {admin.id}")
        else:
            print(f"Admin user already exists: {admin.id}")
        admin_id = admin.id

    print("=" * 50)
    print("Bearer token (1 hour):")
    print(create_access_token(admin_id, "admin"))
    print("=" * 50)


if __name__ == "__main__":
    asyncio.run(create_default_admin())
