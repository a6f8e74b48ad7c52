"""
Account management endpoints
"""

from fastapi import APIRouter, Depends, Path, status

from ..models import MAX_INT64

from .auth import BankingSystem, get_banking_system, load_owned_account, require_session
from .schemas import CreateAccountRequest, UpdateAccountRequest


router = APIRouter()


@router.get("")
def list_accounts(system: BankingSystem = Depends(get_banking_system)):
    """List all accounts"""
    return [account.to_public_dict() for account in system.account_service.list_accounts()]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a new account with zero balance"""
    account = system.account_service.open_account(
        first_name=request.first_name,
        last_name=request.last_name,
        password=request.password
    )
    return account.to_public_dict()


@router.get("/{account_id}")
def get_account(
    account_id: int = Path(..., ge=0, le=MAX_INT64),
    session_number: int = Depends(require_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account details"""
    return load_owned_account(system, account_id, session_number).to_public_dict()


@router.put("/{account_id}")
def update_account(
    request: UpdateAccountRequest,
    account_id: int = Path(..., ge=0, le=MAX_INT64),
    session_number: int = Depends(require_session),
    system: BankingSystem = Depends(get_banking_system)
):
    load_owned_account(system, account_id, session_number)
    system.account_service.update_account(
        account_id,
        first_name=request.first_name,
        last_name=request.last_name,
        number=request.number,
        balance=request.balance
    )
    return {"id": account_id}


@router.delete("/{account_id}")
def delete_account(
    account_id: int = Path(..., ge=0, le=MAX_INT64),
    session_number: int = Depends(require_session),
    system: BankingSystem = Depends(get_banking_system)
):
    load_owned_account(system, account_id, session_number)
    system.account_service.delete_account(account_id)
    return {"id": account_id}
