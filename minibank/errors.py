"""
Error Taxonomy

Domain errors raised by the account, storage, transfer and session modules.
The API layer translates each class to an HTTP status code.
"""


class BankingError(Exception):
    """Base class for all minibank errors"""


class ValidationError(BankingError):
    """Malformed input: bad request body, path parameter or field value"""


class NotFoundError(BankingError):
    """No account matches the given id or number"""


class ConflictError(BankingError):
    """A unique key (account number) is already taken"""


class InsufficientFundsError(BankingError):
    """Transfer amount exceeds the source account balance"""


class AuthError(BankingError):
    """Credential mismatch or an unusable session token"""


class PermissionDeniedError(AuthError):
    """Missing or invalid token, or token not valid for the addressed account"""


class StoreError(BankingError):
    """Underlying persistence failure (connectivity, engine error)"""


class DeadlineExceededError(BankingError):
    """The request deadline passed before the operation could commit"""
