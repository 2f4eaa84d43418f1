from datetime import datetime
from enum import Enum
from typing import Any, Optional


class AuthErrorCode(str, Enum):
    # Identity errors
    INVALID_EMAIL = "auth/invalid-email"
    USER_NOT_FOUND = "auth/user-not-found"
    WRONG_PASSWORD = "auth/wrong-password"
    EMAIL_ALREADY_IN_USE = "auth/email-already-in-use"
    WEAK_PASSWORD = "auth/weak-password"
    USER_DISABLED = "auth/user-disabled"
    TOO_MANY_REQUESTS = "auth/too-many-requests"

    # Client-side validation, never sent to the provider
    PASSWORD_MISMATCH = "validation/password-mismatch"
    TERMS_NOT_ACCEPTED = "validation/terms-not-accepted"

    # Payment errors
    PAYMENT_FAILED = "payment/failed"
    CARD_DECLINED = "payment/card-declined"
    INSUFFICIENT_FUNDS = "payment/insufficient-funds"
    EXPIRED_CARD = "payment/expired-card"
    INVALID_CARD = "payment/invalid-card"
    PAYMENT_NETWORK_ERROR = "payment/network-error"

    # Subscription errors
    SUBSCRIPTION_NOT_FOUND = "subscription/not-found"
    SUBSCRIPTION_NOT_IMPLEMENTED = "subscription/not-implemented"

    # Referral / session errors
    SESSION_REQUIRED = "session/required"
    REFERRAL_FAILED = "referral/failed"

    # Generic errors
    NETWORK_ERROR = "network/error"
    UNKNOWN_ERROR = "unknown/error"


IDENTITY_ERROR_CODES = frozenset({
    AuthErrorCode.INVALID_EMAIL,
    AuthErrorCode.USER_NOT_FOUND,
    AuthErrorCode.WRONG_PASSWORD,
    AuthErrorCode.EMAIL_ALREADY_IN_USE,
    AuthErrorCode.WEAK_PASSWORD,
    AuthErrorCode.USER_DISABLED,
    AuthErrorCode.TOO_MANY_REQUESTS,
})

VALIDATION_ERROR_CODES = frozenset({
    AuthErrorCode.PASSWORD_MISMATCH,
    AuthErrorCode.TERMS_NOT_ACCEPTED,
})

PAYMENT_ERROR_CODES = frozenset({
    AuthErrorCode.PAYMENT_FAILED,
    AuthErrorCode.CARD_DECLINED,
    AuthErrorCode.INSUFFICIENT_FUNDS,
    AuthErrorCode.EXPIRED_CARD,
    AuthErrorCode.INVALID_CARD,
    AuthErrorCode.PAYMENT_NETWORK_ERROR,
})


class AuthError(Exception):
    """
    Domain error surfaced to the UI through the store's error field.
    Also raised to callers of store and manager operations.
    """

    def __init__(
        self,
        code: AuthErrorCode,
        message: str,
        details: Optional[Any] = None,
        recoverable: bool = True,
        timestamp: Optional[datetime] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        self.recoverable = recoverable
        self.timestamp = timestamp or datetime.utcnow()

    def __repr__(self) -> str:
        return f"AuthError(code={self.code.value!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
        }
