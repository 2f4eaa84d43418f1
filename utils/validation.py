"""
Client-side credential validation, run before any identity provider call
"""
import re

from models.auth_error import AuthErrorCode
from services.error_mapping import make_error

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def validate_email(email: str) -> bool:
    """Validate email format"""
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None


def validate_login(email: str) -> None:
    """
    Raises:
        AuthError: INVALID_EMAIL when the address is malformed
    """
    if not validate_email(email):
        raise make_error(AuthErrorCode.INVALID_EMAIL)


def validate_registration(email: str, password: str, confirm_password: str, accept_terms: bool) -> None:
    """
    Validate a registration form. None of these failures reach the provider.

    Raises:
        AuthError: INVALID_EMAIL, PASSWORD_MISMATCH or TERMS_NOT_ACCEPTED
    """
    validate_login(email)
    if password != confirm_password:
        raise make_error(AuthErrorCode.PASSWORD_MISMATCH)
    if not accept_terms:
        raise make_error(AuthErrorCode.TERMS_NOT_ACCEPTED)
