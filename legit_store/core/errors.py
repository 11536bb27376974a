from __future__ import annotations

from typing import Optional


class PaymentError(Exception):
    """Base class for failures on the wallet top-up path."""


class VerificationFailedError(PaymentError):
    """Raised when the gateway does not confirm a transaction as successful."""

    retryable = False

    def __init__(self, message: str, reference: Optional[str] = None) -> None:
        super().__init__(message)
        self.reference = reference


class GatewayUnavailableError(VerificationFailedError):
    """Raised when the gateway cannot be reached or answers with an unusable envelope."""

    retryable = True


class GatewayRequestError(PaymentError):
    """Raised when the gateway refuses a request such as starting a checkout session."""


class StorageFailureError(PaymentError):
    """Raised when the database rejects a read or write. Safe to retry."""


class AuthenticationError(Exception):
    """Raised when a bearer token or admin credentials cannot be verified."""


class PermissionDeniedError(Exception):
    """Raised when an authenticated caller acts outside its own wallet."""
