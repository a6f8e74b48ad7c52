"""
Transfer endpoint
"""

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system
from .schemas import TransferRequestModel


router = APIRouter()


@router.post("")
def transfer(
    request: TransferRequestModel,
    system: BankingSystem = Depends(get_banking_system)
):
    """Move balance from one account to another"""
    confirmation = system.transfer_service.transfer(request.to_transfer_request())
    return confirmation.to_dict()
