"""Domain services for account management."""

from __future__ import annotations

from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.clock import Clock, utcnow
from deviceguard.core.crypto import hash_password, verify_password
from deviceguard.infrastructure.database.repositories import account_repository

from .exceptions import AccountAlreadyExistsError
from .models import Account, AccountCreateInput
from .repository import AccountRepository


def normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


class AccountService:
    """Encapsulates core account use cases."""

    def __init__(self, repository: AccountRepository, clock: Clock = utcnow) -> None:
        self._repository = repository
        self._clock = clock

    @classmethod
    def with_session(cls, session: AsyncSession, clock: Clock = utcnow) -> "AccountService":
        return cls(account_repository.SqlAccountRepository(session), clock)

    async def get_by_id(self, account_id: str) -> Account | None:
        return await self._repository.get_by_id(account_id)

    async def get_by_username(self, username: str) -> Account | None:
        return await self._repository.get_by_username(username)

    async def list_accounts(self) -> Sequence[Account]:
        return await self._repository.list_accounts()

    async def authenticate(self, username: str, password: str) -> Account | None:
        account = await self._repository.get_by_username(username)
        if account is None or not account.is_active:
            return None
        if not verify_password(password, account.password_hash):
            return None
        return account

    async def create_account(self, payload: AccountCreateInput) -> Account:
        existing = await self._repository.get_by_username(payload.username)
        if existing is not None:
            raise AccountAlreadyExistsError(f"username already taken: {payload.username}")

        email = normalize_email(payload.email)
        if email and await self._repository.get_by_email(email) is not None:
            raise AccountAlreadyExistsError(f"email already registered: {email}")

        return await self._repository.create_account(
            username=payload.username,
            password_hash=hash_password(payload.password),
            role=payload.role,
            email=email,
            phone_number=payload.phone_number,
            is_active=payload.is_active,
            created_at=self._clock(),
        )

    async def resolve_recipient(self, reference: str) -> Account | None:
        """Find an active account by id or, failing that, by email address."""
        reference = reference.strip()
        if not reference:
            return None
        account = await self._repository.get_by_id(reference)
        if account is None and "@" in reference:
            account = await self._repository.get_by_email(normalize_email(reference) or "")
        if account is None or not account.is_active:
            return None
        return account

    async def set_last_login(self, account_id: str) -> None:
        await self._repository.set_last_login(account_id, self._clock())
