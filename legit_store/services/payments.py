from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ..core.config import Settings, get_settings
from ..core.errors import (
    GatewayUnavailableError,
    StorageFailureError,
    VerificationFailedError,
)
from ..models import (
    CreateSessionRequest,
    CreateSessionResponse,
    PaymentModel,
    PaymentStatus,
    ReconcileResult,
)
from .gateway import ErcaspayClient, GatewayStatus, VerifiedTransaction
from .repository import PaymentRepository


logger = logging.getLogger(__name__)

# keys a gateway notification may carry the transaction reference under
WEBHOOK_REFERENCE_KEYS = (
    "transactionReference",
    "ercs_reference",
    "paymentReference",
    "tx_reference",
    "reference",
)


class PaymentService:
    def __init__(
        self,
        session: Session,
        gateway: ErcaspayClient,
        repository: Optional[PaymentRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.repository = repository or PaymentRepository(session)
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------
    @staticmethod
    def _as_uuid(value: Any) -> Optional[UUID]:
        if value is None or isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            return None

    def _resolve_user(
        self,
        payment: PaymentModel,
        claimed_user_id: Any,
        verification: VerifiedTransaction,
    ) -> Optional[UUID]:
        candidates = (
            payment.user_id,
            claimed_user_id,
            payment.user_local_id,
            verification.user_id,
        )
        for candidate in candidates:
            user_id = self._as_uuid(candidate)
            if user_id is not None and self.repository.get_user(user_id) is not None:
                return user_id
        return None

    def _already_processed(self, reference: str, payment: PaymentModel) -> ReconcileResult:
        new_balance = None
        if payment.user_id is not None:
            new_balance = self.repository.get_balance(payment.user_id)
        logger.info(
            "payment.already_processed",
            extra={"reference": reference, "payment_id": str(payment.id)},
        )
        return ReconcileResult(
            reference=reference,
            status=PaymentStatus.COMPLETED,
            credited=False,
            already_processed=True,
            amount=payment.amount_minor,
            new_balance=new_balance,
            user_id=payment.user_id,
        )

    def _ensure_payment(
        self,
        payment: Optional[PaymentModel],
        verification: VerifiedTransaction,
        status: PaymentStatus,
    ) -> PaymentModel:
        if payment is None:
            return self.repository.add_or_get_payment(
                verification.references,
                internal_reference=verification.payment_reference,
                gateway_reference=verification.transaction_reference or verification.reference,
                amount_minor=verification.amount_minor or 0,
                currency=self.settings.default_currency,
                email=verification.email,
                status=status,
            )

        values: dict[str, Any] = {"status": status}
        if verification.amount_minor is not None:
            values["amount_minor"] = verification.amount_minor
        if payment.gateway_reference is None and verification.transaction_reference:
            values["gateway_reference"] = verification.transaction_reference
        if payment.internal_reference is None and verification.payment_reference:
            values["internal_reference"] = verification.payment_reference
        return self.repository.update_payment(payment, **values)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def reconcile(self, reference: str, claimed_user_id: Any = None) -> ReconcileResult:
        """Credit the wallet behind ``reference`` exactly once.

        Every entry point (redirect verification, webhook, manual credit)
        calls this. The amount credited is always the gateway's.
        """
        try:
            return self._reconcile(reference, claimed_user_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                "payment.storage_failure",
                extra={"reference": reference, "error": str(exc)},
            )
            raise StorageFailureError(
                f"Could not persist payment {reference}; retry the request"
            ) from exc

    def _reconcile(self, reference: str, claimed_user_id: Any) -> ReconcileResult:
        payment = self.repository.find_payment([reference])
        if payment is not None and payment.credited:
            return self._already_processed(reference, payment)

        verification = self.gateway.verify_transaction(reference)

        payment = self.repository.find_payment(verification.references)
        if payment is not None and payment.credited:
            return self._already_processed(reference, payment)

        if verification.status is GatewayStatus.FAILED:
            if payment is not None:
                self.repository.update_payment(payment, status=PaymentStatus.FAILED)
            logger.warning(
                "payment.verification_failed",
                extra={"reference": reference, "gateway_message": verification.message},
            )
            raise VerificationFailedError(
                verification.message or f"Payment {reference} was not successful",
                reference=reference,
            )

        if verification.status is GatewayStatus.PENDING:
            if payment is not None:
                payment = self._ensure_payment(payment, verification, PaymentStatus.PENDING)
            return ReconcileResult(
                reference=reference,
                status=PaymentStatus.PENDING,
                amount=verification.amount_minor,
                user_id=payment.user_id if payment is not None else None,
            )

        amount = verification.amount_minor
        if amount is None:
            raise GatewayUnavailableError(
                f"Payment gateway confirmed {reference} without an amount",
                reference=reference,
            )
        payment = self._ensure_payment(payment, verification, PaymentStatus.COMPLETED)
        if payment.credited:
            return self._already_processed(reference, payment)

        user_id = self._resolve_user(payment, claimed_user_id, verification)
        if user_id is None:
            logger.warning(
                "payment.orphaned",
                extra={
                    "reference": reference,
                    "payment_id": str(payment.id),
                    "amount": amount,
                },
            )
            return ReconcileResult(
                reference=reference,
                status=PaymentStatus.COMPLETED,
                orphaned=True,
                amount=amount,
            )

        claimed = self.repository.claim_and_credit(
            payment.id,
            user_id=user_id,
            amount_minor=amount,
            gateway_reference=payment.gateway_reference or verification.transaction_reference,
        )
        if not claimed:
            payment = self.repository.find_payment(verification.references) or payment
            return self._already_processed(reference, payment)

        new_balance = self.repository.get_balance(user_id)
        logger.info(
            "payment.credited",
            extra={
                "reference": reference,
                "payment_id": str(payment.id),
                "user_id": str(user_id),
                "amount": amount,
                "balance": new_balance,
            },
        )
        return ReconcileResult(
            reference=reference,
            status=PaymentStatus.COMPLETED,
            credited=True,
            amount=amount,
            new_balance=new_balance,
            user_id=user_id,
        )

    def create_session(self, payload: CreateSessionRequest) -> CreateSessionResponse:
        payment_reference = self.gateway.generate_payment_reference()
        redirect_url = payload.callback_url or f"{self.settings.frontend_url.rstrip('/')}/shop"
        currency = payload.currency.upper()

        initiated = self.gateway.initiate_transaction(
            amount=payload.amount,
            payment_reference=payment_reference,
            customer_email=payload.email,
            currency=currency,
            redirect_url=redirect_url,
            description=f"Wallet top-up for user {payload.user_id}",
            metadata={"userId": payload.user_id, "type": "wallet-topup"},
        )

        user_id = self._as_uuid(payload.user_id)
        if user_id is not None and self.repository.get_user(user_id) is None:
            user_id = None
        try:
            payment = self.repository.add_payment(
                internal_reference=initiated.payment_reference,
                gateway_reference=initiated.transaction_reference,
                amount_minor=self.gateway.to_minor_units(payload.amount),
                currency=currency,
                user_id=user_id,
                user_local_id=None if user_id is not None else payload.user_id,
                email=payload.email,
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageFailureError(
                f"Could not record payment session {payment_reference}"
            ) from exc

        logger.info(
            "payment.session_created",
            extra={
                "reference": payment.internal_reference,
                "payment_id": str(payment.id),
                "amount": payment.amount_minor,
            },
        )
        return CreateSessionResponse(
            checkout_url=initiated.checkout_url,
            reference=initiated.payment_reference,
            transaction_reference=initiated.transaction_reference,
        )

    def handle_webhook(self, payload: dict[str, Any]) -> Optional[ReconcileResult]:
        """Re-verify a gateway notification.

        Only the reference is read from the body. Amount, status and the wallet
        owner all come from the stored record and the gateway's own reply.
        """
        candidates = [payload]
        for key in ("data", "responseBody"):
            nested = payload.get(key)
            if isinstance(nested, dict):
                candidates.append(nested)

        reference: Optional[str] = None
        for candidate in candidates:
            reference = next(
                (str(candidate[key]) for key in WEBHOOK_REFERENCE_KEYS if candidate.get(key)),
                None,
            )
            if reference is not None:
                break

        if reference is None:
            logger.warning("webhook.missing_reference", extra={"keys": sorted(payload)})
            return None
        return self.reconcile(reference)

    def transaction_status(self, reference: str) -> dict[str, Any]:
        return self.gateway.fetch_transaction_details(reference)
