"""
Normalization of provider-specific errors into the closed AuthError taxonomy.

Every identity, billing and referral failure passes through one of the tables
below before it reaches the store. Raw provider text is kept only in
AuthError.details, never in the user-facing message.
"""

import logging
from typing import Any, Dict, Optional

from models.auth_error import AuthError, AuthErrorCode

logger = logging.getLogger(__name__)

ERROR_MESSAGES: Dict[AuthErrorCode, str] = {
    AuthErrorCode.INVALID_EMAIL: "The email address is not valid.",
    AuthErrorCode.USER_NOT_FOUND: "No account exists for this email address.",
    AuthErrorCode.WRONG_PASSWORD: "The password is incorrect.",
    AuthErrorCode.EMAIL_ALREADY_IN_USE: "An account with this email address already exists.",
    AuthErrorCode.WEAK_PASSWORD: "The password is too weak.",
    AuthErrorCode.USER_DISABLED: "This account has been disabled.",
    AuthErrorCode.TOO_MANY_REQUESTS: "Too many attempts. Please try again later.",
    AuthErrorCode.PASSWORD_MISMATCH: "Passwords do not match.",
    AuthErrorCode.TERMS_NOT_ACCEPTED: "You must accept the terms and conditions.",
    AuthErrorCode.PAYMENT_FAILED: "The payment could not be completed.",
    AuthErrorCode.CARD_DECLINED: "Your bank declined the transaction.",
    AuthErrorCode.INSUFFICIENT_FUNDS: "The card has insufficient funds.",
    AuthErrorCode.EXPIRED_CARD: "The card has expired.",
    AuthErrorCode.INVALID_CARD: "The card details are invalid.",
    AuthErrorCode.PAYMENT_NETWORK_ERROR: "A network problem interrupted the payment.",
    AuthErrorCode.SUBSCRIPTION_NOT_FOUND: "No subscription was found.",
    AuthErrorCode.SUBSCRIPTION_NOT_IMPLEMENTED: "This subscription operation is not available yet.",
    AuthErrorCode.SESSION_REQUIRED: "Please sign in to your account again.",
    AuthErrorCode.REFERRAL_FAILED: "The referral request could not be completed.",
    AuthErrorCode.NETWORK_ERROR: "A network error occurred. Please check your connection.",
    AuthErrorCode.UNKNOWN_ERROR: "Something went wrong. Please try again.",
}

# Identity provider codes: both SDK style (auth/...) and REST style (EMAIL_NOT_FOUND)
IDENTITY_PROVIDER_CODES: Dict[str, AuthErrorCode] = {
    "auth/invalid-email": AuthErrorCode.INVALID_EMAIL,
    "auth/user-not-found": AuthErrorCode.USER_NOT_FOUND,
    "auth/wrong-password": AuthErrorCode.WRONG_PASSWORD,
    "auth/invalid-credential": AuthErrorCode.WRONG_PASSWORD,
    "auth/email-already-in-use": AuthErrorCode.EMAIL_ALREADY_IN_USE,
    "auth/weak-password": AuthErrorCode.WEAK_PASSWORD,
    "auth/user-disabled": AuthErrorCode.USER_DISABLED,
    "auth/too-many-requests": AuthErrorCode.TOO_MANY_REQUESTS,
    "auth/network-request-failed": AuthErrorCode.NETWORK_ERROR,
    "INVALID_EMAIL": AuthErrorCode.INVALID_EMAIL,
    "EMAIL_NOT_FOUND": AuthErrorCode.USER_NOT_FOUND,
    "INVALID_PASSWORD": AuthErrorCode.WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": AuthErrorCode.WRONG_PASSWORD,
    "EMAIL_EXISTS": AuthErrorCode.EMAIL_ALREADY_IN_USE,
    "WEAK_PASSWORD": AuthErrorCode.WEAK_PASSWORD,
    "USER_DISABLED": AuthErrorCode.USER_DISABLED,
    "TOO_MANY_ATTEMPTS_TRY_LATER": AuthErrorCode.TOO_MANY_REQUESTS,
}

# Stripe decline / error codes
PAYMENT_PROVIDER_CODES: Dict[str, AuthErrorCode] = {
    "card_declined": AuthErrorCode.CARD_DECLINED,
    "generic_decline": AuthErrorCode.CARD_DECLINED,
    "do_not_honor": AuthErrorCode.CARD_DECLINED,
    "insufficient_funds": AuthErrorCode.INSUFFICIENT_FUNDS,
    "expired_card": AuthErrorCode.EXPIRED_CARD,
    "incorrect_number": AuthErrorCode.INVALID_CARD,
    "invalid_number": AuthErrorCode.INVALID_CARD,
    "incorrect_cvc": AuthErrorCode.INVALID_CARD,
    "invalid_cvc": AuthErrorCode.INVALID_CARD,
    "invalid_expiry_month": AuthErrorCode.INVALID_CARD,
    "invalid_expiry_year": AuthErrorCode.INVALID_CARD,
    "api_connection_error": AuthErrorCode.PAYMENT_NETWORK_ERROR,
    "processing_error": AuthErrorCode.PAYMENT_NETWORK_ERROR,
}


def make_error(
    code: AuthErrorCode,
    message: Optional[str] = None,
    details: Optional[Any] = None,
    recoverable: bool = True,
) -> AuthError:
    return AuthError(
        code=code,
        message=message or ERROR_MESSAGES[code],
        details=details,
        recoverable=recoverable,
    )


def _normalize_code(raw_code: Optional[str]) -> str:
    # REST replies look like "WEAK_PASSWORD : Password should be at least 6 characters"
    return (raw_code or "").split(":")[0].strip()


def map_identity_error(raw_code: Optional[str], raw_message: Optional[str] = None) -> AuthError:
    """Map an identity provider code to a domain error. Identity errors are always recoverable."""
    code = IDENTITY_PROVIDER_CODES.get(_normalize_code(raw_code), AuthErrorCode.UNKNOWN_ERROR)
    if code is AuthErrorCode.UNKNOWN_ERROR:
        logger.warning(f"Unmapped identity provider code: {raw_code}")
    return make_error(code, details={"provider_code": raw_code, "provider_message": raw_message})


def map_payment_error(raw_code: Optional[str], raw_message: Optional[str] = None) -> AuthError:
    code = PAYMENT_PROVIDER_CODES.get(_normalize_code(raw_code), AuthErrorCode.PAYMENT_FAILED)
    return make_error(code, details={"provider_code": raw_code, "provider_message": raw_message})


def normalize_identity_exception(exc: BaseException) -> AuthError:
    """
    Turn whatever an identity adapter raised into an AuthError.
    Duck-typed on a `code` attribute; anything else is UNKNOWN_ERROR.
    """
    if isinstance(exc, AuthError):
        return exc
    raw_code = getattr(exc, "code", None)
    if isinstance(raw_code, str):
        return map_identity_error(raw_code, str(exc))
    logger.error(f"Unexpected identity provider failure: {exc!r}")
    return make_error(AuthErrorCode.UNKNOWN_ERROR, details={"provider_message": str(exc)})
