"""
Unit tests for provider error normalization and client-side validation
"""
import pytest

from models.auth_error import AuthError, AuthErrorCode
from services.error_mapping import (
    ERROR_MESSAGES,
    make_error,
    map_identity_error,
    map_payment_error,
    normalize_identity_exception,
)
from utils.validation import validate_email, validate_registration


def test_every_code_has_a_message():
    assert set(ERROR_MESSAGES) == set(AuthErrorCode)


@pytest.mark.parametrize("raw, expected", [
    ("auth/user-not-found", AuthErrorCode.USER_NOT_FOUND),
    ("EMAIL_NOT_FOUND", AuthErrorCode.USER_NOT_FOUND),
    ("INVALID_LOGIN_CREDENTIALS", AuthErrorCode.WRONG_PASSWORD),
    ("WEAK_PASSWORD : Password should be at least 6 characters", AuthErrorCode.WEAK_PASSWORD),
    ("TOO_MANY_ATTEMPTS_TRY_LATER", AuthErrorCode.TOO_MANY_REQUESTS),
    ("auth/email-already-in-use", AuthErrorCode.EMAIL_ALREADY_IN_USE),
])
def test_map_identity_error(raw, expected):
    error = map_identity_error(raw, "provider says hi")
    assert error.code is expected
    assert error.recoverable is True
    assert error.message == ERROR_MESSAGES[expected]


def test_unmapped_code_never_leaks_provider_text():
    error = map_identity_error("auth/quantum-flux", "Internal stack trace at line 42")

    assert error.code is AuthErrorCode.UNKNOWN_ERROR
    assert "stack trace" not in error.message
    assert error.details["provider_message"] == "Internal stack trace at line 42"


@pytest.mark.parametrize("raw, expected", [
    ("card_declined", AuthErrorCode.CARD_DECLINED),
    ("insufficient_funds", AuthErrorCode.INSUFFICIENT_FUNDS),
    ("expired_card", AuthErrorCode.EXPIRED_CARD),
    ("incorrect_cvc", AuthErrorCode.INVALID_CARD),
    ("api_connection_error", AuthErrorCode.PAYMENT_NETWORK_ERROR),
    (None, AuthErrorCode.PAYMENT_FAILED),
])
def test_map_payment_error(raw, expected):
    assert map_payment_error(raw).code is expected


def test_normalize_identity_exception():
    class SdkError(Exception):
        code = "auth/user-disabled"

    existing = make_error(AuthErrorCode.WRONG_PASSWORD)
    assert normalize_identity_exception(existing) is existing
    assert normalize_identity_exception(SdkError("disabled")).code is AuthErrorCode.USER_DISABLED
    assert normalize_identity_exception(ValueError("odd")).code is AuthErrorCode.UNKNOWN_ERROR


def test_auth_error_to_dict():
    error = make_error(AuthErrorCode.CARD_DECLINED, details={"provider_code": "card_declined"})
    data = error.to_dict()

    assert data["code"] == "payment/card-declined"
    assert data["recoverable"] is True
    assert data["details"] == {"provider_code": "card_declined"}
    assert isinstance(data["timestamp"], str)


@pytest.mark.parametrize("email, valid", [
    ("user@example.com", True),
    (" user.name+tag@sub.example.bg ", True),
    ("user@example", False),
    ("@example.com", False),
    ("", False),
])
def test_validate_email(email, valid):
    assert validate_email(email) is valid


def test_validate_registration_order():
    with pytest.raises(AuthError) as exc_info:
        validate_registration("bad", "a", "b", False)
    assert exc_info.value.code is AuthErrorCode.INVALID_EMAIL

    with pytest.raises(AuthError) as exc_info:
        validate_registration("user@example.com", "a", "b", False)
    assert exc_info.value.code is AuthErrorCode.PASSWORD_MISMATCH

    validate_registration("user@example.com", "secret123", "secret123", True)
