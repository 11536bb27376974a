from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .db import PaymentStatus

class CreateSessionRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Top-up amount in major units (e.g. naira)")
    currency: str = Field(..., min_length=3, max_length=3)
    user_id: str = Field(..., min_length=1, description="Wallet owner id, server-side or client-local")
    email: str = Field(..., min_length=3)
    callback_url: Optional[str] = Field(default=None, description="Where the gateway redirects after checkout")

class CreateSessionResponse(BaseModel):
    checkout_url: str
    reference: str
    transaction_reference: Optional[str] = None

class ReconcileResult(BaseModel):
    reference: str
    status: PaymentStatus
    credited: bool = False
    already_processed: bool = False
    orphaned: bool = False
    amount: Optional[int] = Field(default=None, description="Gateway-verified amount in minor units")
    new_balance: Optional[int] = Field(default=None, description="Wallet balance in minor units after the call")
    user_id: Optional[UUID] = None

class ManualCreditRequest(BaseModel):
    user_id: UUID
    reference: str = Field(..., min_length=1)

class WebhookAck(BaseModel):
    received: bool = True

class TransactionStatusResponse(BaseModel):
    data: dict[str, Any]

class AdminLoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
