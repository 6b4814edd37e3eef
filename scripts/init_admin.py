"""
Create the first administrator account.

Usage: python -m scripts.init_admin --username admin --password '...' --email admin@example.com
"""
import argparse
import asyncio
import getpass

from sqlalchemy import select

from deviceguard.core.config import get_settings
from deviceguard.db.models import Account
from deviceguard.infrastructure.database import (
    build_engine,
    build_session_factory,
    create_all,
    session_scope,
)
from deviceguard.modules.accounts import AccountCreateInput, AccountService


async def create_default_admin(username: str, password: str, email: str) -> None:
    """Create an admin account unless one already exists."""
    engine = build_engine(get_settings())
    await create_all(engine)

    try:
        async with session_scope(build_session_factory(engine)) as db:
            stmt = select(Account).where(Account.role == "admin")
            result = await db.execute(stmt)
            if result.scalars().first() is not None:
                print("An administrator account already exists, nothing to do")
                return

            service = AccountService.with_session(db)
            await service.create_account(
                AccountCreateInput(
                    username=username,
                    password=password,
                    role="admin",
                    email=email,
                    is_active=True,
                )
            )

        print("=" * 50)
        print(f"Administrator '{username}' created")
        print("=" * 50)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--username", default="admin")
    parser.add_argument("--password")
    parser.add_argument("--email", default="admin@example.com")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Administrator password: ")
    asyncio.run(create_default_admin(args.username, password, args.email))


if __name__ == "__main__":
    main()
