"""Account domain specific exceptions."""

from deviceguard.modules.common.exceptions import DomainError, NotFoundError


class AccountError(DomainError):
    """Base class for account domain errors."""

    code = "account_error"


class AccountAlreadyExistsError(AccountError):
    """Raised when attempting to create an account with duplicate username or email."""

    code = "account_already_exists"


class AccountNotFoundError(NotFoundError, AccountError):
    """Raised when the requested account cannot be found."""

    code = "account_not_found"
