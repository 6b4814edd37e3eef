"""Account related dependency providers."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.container import ApplicationContainer
from deviceguard.infrastructure.database.repositories.account_repository import SqlAccountRepository
from deviceguard.modules.accounts.service import AccountService

from .database import get_container, get_db_session


def get_account_repository(db: AsyncSession = Depends(get_db_session)) -> SqlAccountRepository:
    return SqlAccountRepository(db)


def get_account_service(
    repository: SqlAccountRepository = Depends(get_account_repository),
    container: ApplicationContainer = Depends(get_container),
) -> AccountService:
    return AccountService(repository, container.clock)


__all__ = [
    "get_account_repository",
    "get_account_service",
]
