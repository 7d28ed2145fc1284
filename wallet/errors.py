"""Error taxonomy shared by the ledger components and the HTTP layer.

Every error carries a stable machine-readable ``kind`` and the HTTP status it
maps to. Business-rule errors are raised before any mutation is written.
"""


class WalletError(Exception):
    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(WalletError):
    kind = "validation_error"
    status_code = 400


class AuthError(WalletError):
    kind = "auth_error"
    status_code = 401


class NotFoundError(WalletError):
    kind = "not_found"
    status_code = 404


class ConflictError(WalletError):
    kind = "conflict"
    status_code = 409


class InsufficientFundsError(WalletError):
    kind = "insufficient_funds"
    status_code = 400


class DependencyError(WalletError):
    kind = "dependency_error"
    status_code = 503


class InternalError(WalletError):
    kind = "internal_error"
    status_code = 500


class AccountNotFound(NotFoundError):
    kind = "account_not_found"


class DepositNotFound(NotFoundError):
    kind = "deposit_not_found"


class WithdrawalNotFound(NotFoundError):
    kind = "withdrawal_not_found"


class AccountBlocked(AuthError):
    kind = "account_blocked"
    status_code = 403


class Forbidden(AuthError):
    kind = "forbidden"
    status_code = 403


class InsufficientBalance(InsufficientFundsError):
    kind = "insufficient_balance"


class BelowMinimum(ValidationError):
    kind = "below_minimum"


class InvalidMethod(ValidationError):
    kind = "invalid_method"


class InvalidStatus(ValidationError):
    kind = "invalid_status"


class InvalidTransition(ConflictError):
    kind = "invalid_transition"


class PersistenceFailure(DependencyError):
    kind = "persistence_failure"


__all__ = [
    "AccountBlocked",
    "AccountNotFound",
    "AuthError",
    "BelowMinimum",
    "ConflictError",
    "DependencyError",
    "DepositNotFound",
    "Forbidden",
    "InsufficientBalance",
    "InsufficientFundsError",
    "InternalError",
    "InvalidMethod",
    "InvalidStatus",
    "InvalidTransition",
    "NotFoundError",
    "PersistenceFailure",
    "ValidationError",
    "WalletError",
    "WithdrawalNotFound",
]
