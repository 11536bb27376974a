from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import (
    AuthenticationError,
    GatewayRequestError,
    GatewayUnavailableError,
    PermissionDeniedError,
    StorageFailureError,
    VerificationFailedError,
)


logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayUnavailableError)
    async def gateway_unavailable_handler(
        request: Request, exc: GatewayUnavailableError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={"detail": str(exc), "status": "pending", "retryable": True},
        )

    @app.exception_handler(VerificationFailedError)
    async def verification_failed_handler(
        request: Request, exc: VerificationFailedError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc), "status": "failed", "reference": exc.reference},
        )

    @app.exception_handler(GatewayRequestError)
    async def gateway_request_handler(
        request: Request, exc: GatewayRequestError
    ) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StorageFailureError)
    async def storage_failure_handler(
        request: Request, exc: StorageFailureError
    ) -> JSONResponse:
        logger.error("storage.failure", extra={"path": request.url.path, "error": str(exc)})
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "retryable": True},
        )

    @app.exception_handler(AuthenticationError)
    async def authentication_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"detail": str(exc)},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(PermissionDeniedError)
    async def permission_denied_handler(
        request: Request, exc: PermissionDeniedError
    ) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})
