"""
Pydantic schemas for API requests
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from ..models import MAX_INT64, MIN_INT64, TransferRequest


class CamelModel(BaseModel):
    """Accepts camelCase JSON keys as well as the snake_case field names"""
    model_config = ConfigDict(populate_by_name=True)


class CreateAccountRequest(CamelModel):
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=50)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=50)
    password: str = Field(..., min_length=1)


class UpdateAccountRequest(CamelModel):
    first_name: Optional[str] = Field(None, alias="firstName", min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, alias="lastName", min_length=1, max_length=50)
    number: Optional[int] = Field(None, ge=0, le=MAX_INT64)
    balance: Optional[int] = Field(None, ge=MIN_INT64, le=MAX_INT64)


class TransferRequestModel(CamelModel):
    from_account: int = Field(..., alias="fromAccount", ge=MIN_INT64, le=MAX_INT64)
    to_account: int = Field(..., alias="toAccount", ge=MIN_INT64, le=MAX_INT64)
    amount: int = Field(..., gt=0, le=MAX_INT64, description="Amount in the smallest currency unit")

    def to_transfer_request(self) -> TransferRequest:
        return TransferRequest(
            from_account=self.from_account,
            to_account=self.to_account,
            amount=self.amount
        )


class LoginRequest(CamelModel):
    number: int = Field(..., ge=MIN_INT64, le=MAX_INT64)
    password: str
