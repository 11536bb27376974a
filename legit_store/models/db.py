from __future__ import annotations
from datetime import datetime, UTC
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4
from sqlmodel import Field, SQLModel

class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

class User(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    email: str = Field(unique=True, index=True)
    name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    balance: int = Field(default=0, ge=0)

class Admin(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    email: str = Field(unique=True, index=True)
    password_hash: str
    name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

class Payment(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    # paymentReference we generate before the gateway knows the transaction
    internal_reference: Optional[str] = Field(default=None, unique=True, index=True)
    # transactionReference assigned by the gateway
    gateway_reference: Optional[str] = Field(default=None, unique=True, index=True)
    user_id: Optional[UUID] = Field(default=None, foreign_key="user.id", index=True)
    user_local_id: Optional[str] = None
    email: Optional[str] = None
    amount_minor: int = Field(default=0, ge=0)
    currency: str = "NGN"
    method: str = "ercaspay"
    status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    credited: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    credited_at: Optional[datetime] = None
