from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

import httpx

from ..core.errors import GatewayRequestError, GatewayUnavailableError


logger = logging.getLogger(__name__)


class GatewayStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


@dataclass(frozen=True)
class GatewayResponse:
    """Ercaspay response envelope."""

    http_status: int
    request_successful: bool
    response_message: str
    response_code: str
    body: Any = None


@dataclass(frozen=True)
class InitiatedTransaction:
    checkout_url: str
    payment_reference: str
    transaction_reference: Optional[str]


@dataclass(frozen=True)
class VerifiedTransaction:
    reference: str
    status: GatewayStatus
    amount_minor: Optional[int]
    payment_reference: Optional[str] = None
    transaction_reference: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    message: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def references(self) -> list[str]:
        refs = [self.reference, self.payment_reference, self.transaction_reference]
        return [ref for ref in dict.fromkeys(refs) if ref]


class ErcaspayClient:
    """Synchronous client for the Ercaspay checkout API.

    Only the calls the wallet top-up flow needs are wrapped. Every call is
    bounded by ``timeout``; transport failures surface as
    ``GatewayUnavailableError`` so callers can retry.
    """

    INITIATE_PATH = "/api/v1/payment/initiate"
    VERIFY_PATH = "/api/v1/payment/transaction/verify/{reference}"
    DETAILS_PATH = "/api/v1/payment/details/{reference}"

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        *,
        timeout: float = 10.0,
        minor_units_per_major: int = 100,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.minor_units_per_major = minor_units_per_major
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Accept": "application/json",
            },
        )

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------
    @staticmethod
    def generate_payment_reference() -> str:
        return str(uuid4())

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> GatewayResponse:
        try:
            response = self._client.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning(
                "gateway.unreachable",
                extra={"path": path, "error": str(exc)},
            )
            raise GatewayUnavailableError(f"Payment gateway unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise GatewayUnavailableError(
                f"Payment gateway error (HTTP {response.status_code})"
            )

        try:
            envelope = response.json()
        except ValueError as exc:
            raise GatewayUnavailableError("Payment gateway returned a non-JSON response") from exc
        if not isinstance(envelope, dict):
            raise GatewayUnavailableError("Payment gateway returned an unexpected payload")

        return GatewayResponse(
            http_status=response.status_code,
            request_successful=bool(envelope.get("requestSuccessful")),
            response_message=str(envelope.get("responseMessage") or ""),
            response_code=str(envelope.get("responseCode") or "").lower(),
            body=envelope.get("responseBody"),
        )

    def to_minor_units(self, amount: Any) -> int:
        try:
            value = Decimal(str(amount))
        except InvalidOperation as exc:
            raise GatewayUnavailableError(f"Payment gateway returned an invalid amount: {amount!r}") from exc
        if not value.is_finite() or value < 0:
            raise GatewayUnavailableError(f"Payment gateway returned an invalid amount: {amount!r}")
        minor = (value * self.minor_units_per_major).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return int(minor)

    @staticmethod
    def _parse_metadata(raw: Any) -> dict[str, Any]:
        if isinstance(raw, dict):
            return raw
        if isinstance(raw, str) and raw:
            try:
                parsed = json.loads(raw)
            except ValueError:
                return {}
            return parsed if isinstance(parsed, dict) else {}
        return {}

    @staticmethod
    def _map_status(response: GatewayResponse) -> GatewayStatus:
        if not response.request_successful:
            return GatewayStatus.FAILED
        if response.response_code == "success":
            return GatewayStatus.SUCCESS
        if response.response_code == "failed":
            return GatewayStatus.FAILED
        return GatewayStatus.PENDING

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def initiate_transaction(
        self,
        *,
        amount: Decimal,
        payment_reference: str,
        customer_email: str,
        currency: str,
        redirect_url: str,
        description: str,
        metadata: dict[str, Any],
        customer_name: str = "Customer",
        payment_methods: str = "card,bank-transfer,ussd",
    ) -> InitiatedTransaction:
        response = self._request(
            "POST",
            self.INITIATE_PATH,
            {
                "amount": str(amount),
                "paymentReference": payment_reference,
                "paymentMethods": payment_methods,
                "customerName": customer_name,
                "customerEmail": customer_email,
                "currency": currency.upper(),
                "customerPhoneNumber": "",
                "redirectUrl": redirect_url,
                "description": description,
                "feeBearer": "customer",
                "metadata": metadata,
            },
        )
        body = response.body if isinstance(response.body, dict) else {}
        checkout_url = body.get("checkoutUrl")
        if not response.request_successful or not checkout_url:
            raise GatewayRequestError(
                response.response_message or "Failed to create payment session"
            )
        return InitiatedTransaction(
            checkout_url=checkout_url,
            payment_reference=body.get("paymentReference") or payment_reference,
            transaction_reference=body.get("transactionReference"),
        )

    def verify_transaction(self, reference: str) -> VerifiedTransaction:
        response = self._request("GET", self.VERIFY_PATH.format(reference=reference))
        status = self._map_status(response)
        body = response.body if isinstance(response.body, dict) else {}

        amount_minor: Optional[int] = None
        if body.get("amount") is not None:
            amount_minor = self.to_minor_units(body["amount"])
        if status is GatewayStatus.SUCCESS and amount_minor is None:
            raise GatewayUnavailableError(
                f"Payment gateway confirmed {reference} without an amount"
            )

        metadata = self._parse_metadata(body.get("metadata"))
        customer = body.get("customer") if isinstance(body.get("customer"), dict) else {}
        user_id = metadata.get("userId")
        return VerifiedTransaction(
            reference=reference,
            status=status,
            amount_minor=amount_minor,
            payment_reference=body.get("paymentReference") or body.get("tx_reference"),
            transaction_reference=body.get("transactionReference") or body.get("ercs_reference"),
            user_id=str(user_id) if user_id else None,
            email=customer.get("email") or body.get("customerEmail"),
            message=response.response_message,
            raw=body,
        )

    def fetch_transaction_details(self, reference: str) -> dict[str, Any]:
        response = self._request("GET", self.DETAILS_PATH.format(reference=reference))
        if not response.request_successful or not isinstance(response.body, dict):
            raise GatewayRequestError(
                response.response_message or "Failed to fetch transaction status"
            )
        return response.body
