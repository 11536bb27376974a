from decimal import Decimal

import httpx
import pytest

from ..core.errors import GatewayRequestError, GatewayUnavailableError
from ..services import ErcaspayClient, GatewayStatus


def _client(handler) -> ErcaspayClient:
    return ErcaspayClient(
        "https://api.ercaspay.test",
        "ECRS-TEST-SK",
        transport=httpx.MockTransport(handler),
    )


def _envelope(code: str, body=None, successful: bool = True, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={
            "requestSuccessful": successful,
            "responseCode": code,
            "responseMessage": code,
            "responseBody": body,
        },
    )


def test_verify_parses_amount_references_and_metadata() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _envelope(
            "success",
            {
                "amount": "1500.50",
                "tx_reference": "int-1",
                "ercs_reference": "ERCS-1",
                "metadata": '{"userId": "user-9", "type": "wallet-topup"}',
                "customer": {"email": "buyer@example.com"},
            },
        )

    verified = _client(handler).verify_transaction("ERCS-1")

    assert verified.status is GatewayStatus.SUCCESS
    assert verified.amount_minor == 150050
    assert verified.payment_reference == "int-1"
    assert verified.transaction_reference == "ERCS-1"
    assert verified.user_id == "user-9"
    assert verified.email == "buyer@example.com"
    assert verified.references == ["ERCS-1", "int-1"]
    assert seen[0].url.path == "/api/v1/payment/transaction/verify/ERCS-1"
    assert seen[0].headers["Authorization"] == "Bearer ECRS-TEST-SK"


@pytest.mark.parametrize(
    ("code", "successful", "expected"),
    [
        ("success", True, GatewayStatus.SUCCESS),
        ("failed", True, GatewayStatus.FAILED),
        ("pending", True, GatewayStatus.PENDING),
        ("success", False, GatewayStatus.FAILED),
    ],
)
def test_verify_maps_response_codes(code: str, successful: bool, expected: GatewayStatus) -> None:
    client = _client(lambda request: _envelope(code, {"amount": 10}, successful=successful))
    assert client.verify_transaction("R1").status is expected


def test_verify_success_without_amount_is_unusable() -> None:
    client = _client(lambda request: _envelope("success", {"status": "SUCCESSFUL"}))
    with pytest.raises(GatewayUnavailableError):
        client.verify_transaction("R1")


def test_server_errors_and_garbage_are_retryable() -> None:
    down = _client(lambda request: httpx.Response(503, text="maintenance"))
    with pytest.raises(GatewayUnavailableError):
        down.verify_transaction("R1")

    garbage = _client(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(GatewayUnavailableError):
        garbage.verify_transaction("R1")


def test_timeouts_are_retryable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GatewayUnavailableError) as excinfo:
        _client(handler).verify_transaction("R1")
    assert excinfo.value.retryable is True


def test_initiate_refusal_raises_request_error() -> None:
    client = _client(lambda request: _envelope("bad_request", successful=False, status_code=400))
    with pytest.raises(GatewayRequestError):
        client.initiate_transaction(
            amount=Decimal("50"),
            payment_reference="ref-1",
            customer_email="buyer@example.com",
            currency="ngn",
            redirect_url="http://localhost:5173/shop",
            description="Wallet top-up",
            metadata={},
        )


def test_minor_unit_conversion_rounds_half_up() -> None:
    client = _client(lambda request: _envelope("success"))
    assert client.to_minor_units(50) == 5000
    assert client.to_minor_units("0.005") == 1
    assert client.to_minor_units(12.34) == 1234
    with pytest.raises(GatewayUnavailableError):
        client.to_minor_units("abc")
