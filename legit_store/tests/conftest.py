from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from ..core.config import get_settings
from ..core.db import create_engine_for_url, get_session, init_db, set_engine
from ..core.dependencies import get_gateway
from ..main import app
from ..models import UserModel
from ..services import ErcaspayClient


@dataclass
class GatewayTransaction:
    response_code: str
    amount: Any
    payment_reference: Optional[str] = None
    transaction_reference: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


class FakeErcaspay:
    """In-memory stand-in for the Ercaspay REST API."""

    def __init__(self) -> None:
        self.transactions: dict[str, GatewayTransaction] = {}
        self.initiated: list[dict[str, Any]] = []
        self.verify_calls: list[str] = []
        self.unreachable = False
        self._lock = threading.Lock()

    def add(
        self,
        reference: str,
        response_code: str = "success",
        amount: Any = 50,
        payment_reference: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> GatewayTransaction:
        transaction = GatewayTransaction(
            response_code=response_code,
            amount=amount,
            payment_reference=payment_reference,
            transaction_reference=reference,
            metadata=metadata or {},
        )
        self.transactions[reference] = transaction
        if payment_reference:
            self.transactions[payment_reference] = transaction
        return transaction

    @staticmethod
    def _envelope(
        successful: bool,
        code: str,
        message: str,
        body: Any = None,
        status_code: int = 200,
    ) -> httpx.Response:
        return httpx.Response(
            status_code,
            json={
                "requestSuccessful": successful,
                "responseCode": code,
                "responseMessage": message,
                "responseBody": body,
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path == "/api/v1/payment/initiate":
            payload = json.loads(request.content)
            self.initiated.append(payload)
            transaction_reference = f"ERCS-{payload['paymentReference']}"
            return self._envelope(
                True,
                "success",
                "success",
                {
                    "paymentReference": payload["paymentReference"],
                    "transactionReference": transaction_reference,
                    "checkoutUrl": f"https://checkout.ercaspay.test/{transaction_reference}",
                },
            )

        reference = path.rsplit("/", 1)[-1]
        if path.startswith("/api/v1/payment/transaction/verify/"):
            with self._lock:
                self.verify_calls.append(reference)
        transaction = self.transactions.get(reference)
        if transaction is None:
            return self._envelope(False, "not_found", "Transaction not found", status_code=404)

        body = {
            "status": transaction.response_code.upper(),
            "amount": transaction.amount,
            "paymentReference": transaction.payment_reference,
            "transactionReference": transaction.transaction_reference,
            "metadata": transaction.metadata,
            "customer": {"email": "buyer@example.com"},
        }
        return self._envelope(True, transaction.response_code, "Transaction fetched", body)


@pytest.fixture
def fake_gateway() -> FakeErcaspay:
    return FakeErcaspay()


@pytest.fixture
def gateway(fake_gateway: FakeErcaspay) -> ErcaspayClient:
    client = ErcaspayClient(
        "https://api.ercaspay.test",
        "ECRS-TEST-SK",
        timeout=1.0,
        transport=httpx.MockTransport(fake_gateway.handler),
    )
    yield client
    client.close()


@pytest.fixture
def engine(tmp_path):
    test_db = tmp_path / "test.db"
    engine = create_engine_for_url(f"sqlite:///{test_db}")
    original_engine = create_engine_for_url(get_settings().database_url)
    set_engine(engine)
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    set_engine(original_engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user(engine):
    def _make_user(email: str = "buyer@example.com", balance: int = 0) -> UserModel:
        with Session(engine) as session:
            user = UserModel(email=email, balance=balance)
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    return _make_user


@pytest.fixture
def client(engine, gateway: ErcaspayClient) -> TestClient:
    def _get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session_override
    app.dependency_overrides[get_gateway] = lambda: gateway
    init_db()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
