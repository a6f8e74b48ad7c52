"""
Service container and authentication dependencies
"""

from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, Request

from ..accounts import AccountService
from ..config import MinibankConfig
from ..credentials import CredentialHasher
from ..errors import AuthError, PermissionDeniedError
from ..models import Account
from ..sessions import SessionIssuer
from ..storage import AccountStore, create_store
from ..transfers import TransferService


class BankingSystem:
    """Store, session issuer and services, constructed once per application"""

    def __init__(
        self,
        store: AccountStore,
        sessions: SessionIssuer,
        hasher: Optional[CredentialHasher] = None,
        password_min_length: int = 8,
        number_attempts: int = 5
    ):
        self.store = store
        self.sessions = sessions
        self.account_service = AccountService(
            store, hasher,
            password_min_length=password_min_length,
            number_attempts=number_attempts
        )
        self.transfer_service = TransferService(store)

    @classmethod
    def from_config(cls, config: MinibankConfig) -> 'BankingSystem':
        """Build every component from configuration"""
        sessions = SessionIssuer(
            config.jwt_secret,
            expiry=timedelta(minutes=config.jwt_expiry_minutes),
            algorithm=config.jwt_algorithm
        )
        hasher = CredentialHasher(n=config.scrypt_n, r=config.scrypt_r, p=config.scrypt_p)
        return cls(
            create_store(config),
            sessions,
            hasher,
            password_min_length=config.password_min_length,
            number_attempts=config.account_number_attempts
        )

    def close(self) -> None:
        self.store.close()


def get_banking_system(request: Request) -> BankingSystem:
    """Dependency returning the application's BankingSystem"""
    return request.app.state.banking_system


def require_session(
    x_jwt_token: Optional[str] = Header(None),
    system: BankingSystem = Depends(get_banking_system)
) -> int:
    """Dependency that validates the x-jwt-token header and returns its account number"""
    if not x_jwt_token:
        raise PermissionDeniedError("Missing session token")
    try:
        return system.sessions.validate_token(x_jwt_token)
    except AuthError as e:
        raise PermissionDeniedError(str(e)) from e


def load_owned_account(system: BankingSystem, account_id: int, session_number: int) -> Account:
    """Load an account and check that the session belongs to it"""
    account = system.account_service.get_account(account_id)
    if account.number != session_number:
        raise PermissionDeniedError("Permission denied for this account")
    return account
