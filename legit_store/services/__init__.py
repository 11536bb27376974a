from .admin import AdminService
from .gateway import ErcaspayClient, GatewayStatus, VerifiedTransaction
from .payments import PaymentService
from .repository import PaymentRepository

__all__ = [
    "AdminService",
    "ErcaspayClient",
    "GatewayStatus",
    "PaymentRepository",
    "PaymentService",
    "VerifiedTransaction",
]
