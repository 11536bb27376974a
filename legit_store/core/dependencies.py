from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from ..services import AdminService, ErcaspayClient, PaymentRepository, PaymentService
from .config import get_settings
from .db import get_session
from .errors import AuthenticationError
from .security import Principal, decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)

@lru_cache(maxsize=1)
def get_gateway() -> ErcaspayClient:
    settings = get_settings()
    return ErcaspayClient(
        settings.ercaspay_base_url,
        settings.ercaspay_secret_key,
        timeout=settings.gateway_timeout_seconds,
        minor_units_per_major=settings.minor_units_per_major,
    )

def get_payment_service(
    session: Session = Depends(get_session),
    gateway: ErcaspayClient = Depends(get_gateway),
) -> PaymentService:
    repository = PaymentRepository(session)
    return PaymentService(session, gateway, repository)

def get_admin_service(session: Session = Depends(get_session)) -> AdminService:
    return AdminService(PaymentRepository(session))

def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    if credentials is None:
        raise AuthenticationError("Missing authorization")
    return decode_access_token(credentials.credentials)
