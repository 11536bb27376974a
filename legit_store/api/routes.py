import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool

from ..core.dependencies import get_admin_service, get_current_principal, get_payment_service
from ..core.errors import PermissionDeniedError
from ..core.security import Principal
from ..models import (
    AdminLoginRequest,
    CreateSessionRequest,
    CreateSessionResponse,
    ManualCreditRequest,
    ReconcileResult,
    TokenResponse,
    TransactionStatusResponse,
    WebhookAck,
)
from ..services import AdminService, PaymentService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

@router.post("/create-session", response_model=CreateSessionResponse)
def create_session(
    payload: CreateSessionRequest,
    service: PaymentService = Depends(get_payment_service),
) -> CreateSessionResponse:
    return service.create_session(payload)

@router.get("/verify", response_model=ReconcileResult)
def verify_payment(
    reference: str,
    service: PaymentService = Depends(get_payment_service),
) -> ReconcileResult:
    return service.reconcile(reference)

@router.post("/webhook", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def receive_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
) -> WebhookAck:
    # the gateway retries anything but a 200, so failures are logged and acknowledged
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("webhook.invalid_payload")
        return WebhookAck()
    if not isinstance(payload, dict):
        logger.warning("webhook.invalid_payload")
        return WebhookAck()

    try:
        result = await run_in_threadpool(service.handle_webhook, payload)
    except Exception:
        logger.exception("webhook.failed")
        return WebhookAck()

    if result is not None:
        logger.info(
            "webhook.processed",
            extra={
                "reference": result.reference,
                "credited": result.credited,
                "already_processed": result.already_processed,
                "orphaned": result.orphaned,
            },
        )
    return WebhookAck()

@router.post("/credit", response_model=ReconcileResult)
def credit_payment(
    payload: ManualCreditRequest,
    principal: Principal = Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
) -> ReconcileResult:
    if not principal.is_admin and principal.subject != str(payload.user_id):
        raise PermissionDeniedError("Cannot credit a payment for another user")
    return service.reconcile(payload.reference, payload.user_id)

@router.get("/status/{reference}", response_model=TransactionStatusResponse)
def get_transaction_status(
    reference: str,
    service: PaymentService = Depends(get_payment_service),
) -> TransactionStatusResponse:
    return TransactionStatusResponse(data=service.transaction_status(reference))

admin_router = APIRouter(prefix="/admin", tags=["admin"])

@admin_router.post("/login", response_model=TokenResponse)
def admin_login(
    payload: AdminLoginRequest,
    service: AdminService = Depends(get_admin_service),
) -> TokenResponse:
    return service.login(payload)

__all__ = ["router", "admin_router"]
