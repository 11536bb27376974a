from __future__ import annotations

import logging

from ..core.errors import AuthenticationError
from ..core.security import create_access_token, verify_password
from ..models import AdminLoginRequest, TokenResponse
from .repository import PaymentRepository


logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, repository: PaymentRepository) -> None:
        self.repository = repository

    def login(self, payload: AdminLoginRequest) -> TokenResponse:
        admin = self.repository.get_admin_by_email(payload.email)
        if admin is None or not verify_password(payload.password, admin.password_hash):
            logger.info("admin.login_failed", extra={"email": payload.email})
            raise AuthenticationError("Invalid credentials")
        token = create_access_token(str(admin.id), "admin")
        logger.info("admin.login", extra={"admin_id": str(admin.id)})
        return TokenResponse(access_token=token)
