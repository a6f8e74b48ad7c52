"""
Account Management Module

Opens, reads, updates and closes accounts, and authenticates account
holders by number and password. Persistence goes through an AccountStore;
uniqueness of account numbers is enforced by the store and a collision is
resolved by drawing a new number.
"""

import random
from dataclasses import replace
from typing import List, Optional

from .credentials import CredentialHasher, default_hasher
from .deadlines import check_deadline
from .errors import AuthError, ConflictError, NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .models import Account
from .storage import AccountStore


ACCOUNT_NUMBER_SPACE = 1_000_000

logger = get_logger("accounts")


def generate_account_number() -> int:
    """Pseudo-random account number in [0, 1_000_000)"""
    return random.randrange(ACCOUNT_NUMBER_SPACE)


def new_account(
    first_name: str,
    last_name: str,
    password: str,
    hasher: Optional[CredentialHasher] = None
) -> Account:
    """
    Build a new, unsaved account

    The password is hashed immediately; the plaintext is not kept.
    Balance starts at zero and ``created_at`` is the current UTC time.
    """
    return Account(
        first_name=first_name,
        last_name=last_name,
        password_hash=(hasher or default_hasher).hash(password),
        number=generate_account_number(),
        balance=0,
    )


class AccountService:
    """
    Manages account lifecycle and credential checks
    """

    def __init__(
        self,
        store: AccountStore,
        hasher: Optional[CredentialHasher] = None,
        password_min_length: int = 8,
        number_attempts: int = 5
    ):
        self.store = store
        self.hasher = hasher or default_hasher
        self.password_min_length = password_min_length
        self.number_attempts = max(1, number_attempts)

    def open_account(self, first_name: str, last_name: str, password: str) -> Account:
        """
        Create and persist a new account

        Args:
            first_name: Account holder first name
            last_name: Account holder last name
            password: Plaintext password, hashed before storage

        Returns:
            The stored Account, including its store-assigned id

        Raises:
            ValidationError: empty names or a password that is too short
            ConflictError: every generated account number was already taken
        """
        if not first_name.strip() or not last_name.strip():
            raise ValidationError("First and last name are required")
        if len(password) < self.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.password_min_length} characters"
            )

        account = new_account(first_name, last_name, password, self.hasher)
        for attempt in range(1, self.number_attempts + 1):
            check_deadline()
            try:
                stored = self.store.create_account(account)
            except ConflictError:
                if attempt == self.number_attempts:
                    raise
                log_action(
                    logger, "warning", "Account number collision, drawing a new number",
                    account=account.number, action="account_number_retry", attempt=attempt
                )
                account.number = generate_account_number()
                continue

            log_action(
                logger, "info", "Account created",
                account=stored.number, action="create_account", account_id=stored.id
            )
            return stored

    def get_account(self, account_id: int) -> Account:
        return self.store.get_account_by_id(account_id)

    def get_account_by_number(self, number: int) -> Account:
        return self.store.get_account_by_number(number)

    def list_accounts(self) -> List[Account]:
        return self.store.list_accounts()

    def update_account(
        self,
        account_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        number: Optional[int] = None,
        balance: Optional[int] = None
    ) -> Account:
        """Apply a partial update; fields left as None keep their stored value"""
        changes = {
            "first_name": first_name,
            "last_name": last_name,
            "number": number,
            "balance": balance,
        }
        account = self.store.get_account_by_id(account_id)
        # replace() re-runs model validation on the merged record
        account = replace(account, **{k: v for k, v in changes.items() if v is not None})

        check_deadline()
        updated = self.store.update_account(account)
        log_action(
            logger, "info", "Account updated",
            account=updated.number, action="update_account", account_id=account_id
        )
        return updated

    def delete_account(self, account_id: int) -> None:
        check_deadline()
        self.store.delete_account(account_id)
        log_action(
            logger, "info", "Account deleted",
            action="delete_account", account_id=account_id
        )

    def authenticate(self, number: int, password: str) -> Account:
        """
        Return the account if the password matches

        Unknown numbers and wrong passwords raise the same AuthError.
        """
        try:
            account = self.store.get_account_by_number(number)
        except NotFoundError:
            account = None

        if account is None or not account.verify_password(password, self.hasher):
            log_action(
                logger, "warning", "Authentication failed",
                account=number, action="login_failed"
            )
            raise AuthError("Invalid account number or password")

        log_action(
            logger, "info", "Authentication succeeded",
            account=number, action="login"
        )
        return account
