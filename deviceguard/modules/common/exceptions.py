"""Exceptions shared by every domain module."""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for errors scoped to a single request, lookup or transfer attempt."""

    code: str = "domain_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFoundError(DomainError):
    """Raised when a referenced record does not exist."""

    code = "not_found"


class LockTimeoutError(DomainError):
    """Raised when a per-record write lock could not be acquired in time."""

    code = "lock_timeout"

    def __init__(self, key: str) -> None:
        super().__init__(f"resource is busy: {key}")
        self.key = key
