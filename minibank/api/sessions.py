"""
Login endpoint
"""

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system
from .schemas import LoginRequest


router = APIRouter()


@router.post("")
def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Authenticate with account number and password and return a session token"""
    account = system.account_service.authenticate(request.number, request.password)
    return {"jwt": system.sessions.issue_token(account)}
