"""
Transfer Processing Module

Moves balance between two accounts. Input validation happens when the
TransferRequest is built, before any account lookup; the store then runs
the balance check, debit and credit inside a single transaction.
"""

from .errors import BankingError
from .logging_config import get_logger, log_action
from .models import TransferRequest
from .storage import AccountStore


logger = get_logger("transfers")


class TransferService:
    """Validates and executes account-to-account transfers"""

    def __init__(self, store: AccountStore):
        self.store = store

    def transfer(self, request: TransferRequest) -> TransferRequest:
        """
        Execute a transfer

        Raises:
            NotFoundError: source or destination account number is unknown
            InsufficientFundsError: source balance is below the amount
        """
        details = request.to_dict()
        try:
            confirmation = self.store.transfer(request)
        except BankingError as e:
            log_action(
                logger, "warning", f"Transfer rejected: {e}",
                account=request.from_account, action="transfer_rejected",
                reason=type(e).__name__, **details
            )
            raise

        log_action(
            logger, "info", "Transfer completed",
            account=request.from_account, action="transfer", **details
        )
        return confirmation
