"""
Domain Records

Account and TransferRequest are plain dataclasses shared by the storage
engines and the services built on them. Instances handed out by a store are
detached copies; mutating one never changes persisted state.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .credentials import CredentialHasher, default_hasher
from .errors import ValidationError


# Largest value a signed 64-bit database column can hold
MAX_INT64 = 2 ** 63 - 1
MIN_INT64 = -(2 ** 63)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_int64(name: str, value: Any) -> None:
    if not _is_int(value):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if not MIN_INT64 <= value <= MAX_INT64:
        raise ValidationError(f"{name} is outside the 64-bit integer range")


@dataclass
class Account:
    """
    Bank account and its credential

    ``number`` addresses the account for login and transfers; ``id`` is the
    storage key and stays ``None`` until a store assigns it.
    """
    first_name: str
    last_name: str
    password_hash: bytes = field(repr=False)
    number: int
    balance: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None

    def __post_init__(self):
        _check_int64("Account balance", self.balance)
        _check_int64("Account number", self.number)

    def verify_password(self, password: str, hasher: Optional[CredentialHasher] = None) -> bool:
        """Check a plaintext password against the stored hash"""
        return (hasher or default_hasher).verify(password, self.password_hash)

    def copy(self) -> 'Account':
        return replace(self)

    def to_public_dict(self) -> Dict[str, Any]:
        """JSON-ready representation; the credential hash is never included"""
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "number": self.number,
            "balance": self.balance,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class TransferRequest:
    """Move ``amount`` from one account number to another"""
    from_account: int
    to_account: int
    amount: int

    def __post_init__(self):
        for name in ("from_account", "to_account", "amount"):
            _check_int64(f"Transfer {name}", getattr(self, name))
        if self.amount <= 0:
            raise ValidationError(f"Transfer amount must be positive, got {self.amount}")
        if self.from_account == self.to_account:
            raise ValidationError("Cannot transfer to the same account")

    def to_dict(self) -> Dict[str, int]:
        return {
            "fromAccount": self.from_account,
            "toAccount": self.to_account,
            "amount": self.amount,
        }
