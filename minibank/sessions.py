"""
Session Token Module

Issues and validates signed JWT session tokens asserting an account
number. The signing secret is injected; it is never a module constant.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .errors import AuthError
from .models import Account


ACCOUNT_NUMBER_CLAIM = "accountNumber"


class SessionIssuer:
    """Creates and verifies bearer tokens"""

    def __init__(self, secret: str, expiry: timedelta = timedelta(minutes=15),
                 algorithm: str = "HS256"):
        if not secret:
            raise ValueError("A session signing secret must be configured")
        self._secret = secret
        self.expiry = expiry
        self.algorithm = algorithm

    def issue_token(self, account: Account, now: Optional[datetime] = None) -> str:
        """Sign a token for ``account`` that expires after ``self.expiry``"""
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            ACCOUNT_NUMBER_CLAIM: account.number,
            "iat": issued_at,
            "exp": issued_at + self.expiry,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def validate_token(self, token: str) -> int:
        """
        Verify signature and expiry and return the account number

        Raises:
            AuthError: bad signature, malformed or expired token, missing claims
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", ACCOUNT_NUMBER_CLAIM]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthError("Invalid token")

        number = payload[ACCOUNT_NUMBER_CLAIM]
        if not isinstance(number, int) or isinstance(number, bool):
            raise AuthError("Invalid token")
        return number
