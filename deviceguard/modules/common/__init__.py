from .exceptions import DomainError, LockTimeoutError, NotFoundError

__all__ = ["DomainError", "LockTimeoutError", "NotFoundError"]
