"""Database and container dependency providers."""

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.container import ApplicationContainer
from deviceguard.infrastructure.database.session import session_scope


def get_container(request: Request) -> ApplicationContainer:
    return request.app.state.container


async def get_db_session(
    container: ApplicationContainer = Depends(get_container),
) -> AsyncIterator[AsyncSession]:
    async with session_scope(container.session_factory) as session:
        yield session


__all__ = ["get_container", "get_db_session"]
