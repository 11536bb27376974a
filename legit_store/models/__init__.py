from .db import Admin as AdminModel
from .db import Payment as PaymentModel
from .db import PaymentStatus
from .db import User as UserModel
from .schemas import (
    AdminLoginRequest,
    CreateSessionRequest,
    CreateSessionResponse,
    ManualCreditRequest,
    ReconcileResult,
    TokenResponse,
    TransactionStatusResponse,
    WebhookAck,
)

__all__ = [
    "AdminLoginRequest",
    "CreateSessionRequest",
    "CreateSessionResponse",
    "ManualCreditRequest",
    "ReconcileResult",
    "TokenResponse",
    "TransactionStatusResponse",
    "WebhookAck",
    "AdminModel",
    "PaymentModel",
    "PaymentStatus",
    "UserModel",
]
