from fastapi.responses import JSONResponse

from models.auth_error import PAYMENT_ERROR_CODES, AuthError, AuthErrorCode

# Identity codes that mean "credentials rejected" rather than "bad input"
UNAUTHORIZED_CODES = {
    AuthErrorCode.USER_NOT_FOUND,
    AuthErrorCode.WRONG_PASSWORD,
    AuthErrorCode.USER_DISABLED,
    AuthErrorCode.SESSION_REQUIRED,
}


def success_response(data=None, message="OK", status=200):
    return JSONResponse(
        status_code=status,
        content={
            "ok": True,
            "data": data if data is not None else {},
            "error": None,
            "message": message,
        }
    )


def error_response(error_code, status=400, message="An error occurred", data=None):
    return JSONResponse(
        status_code=status,
        content={
            "ok": False,
            "data": data or {},
            "error": error_code,
            "message": message,
        }
    )


def auth_error_status(error: AuthError) -> int:
    """HTTP status for a domain error; identity and validation input errors are 400"""
    if error.code in UNAUTHORIZED_CODES:
        return 401
    if error.code is AuthErrorCode.SUBSCRIPTION_NOT_IMPLEMENTED:
        return 501
    if error.code in PAYMENT_ERROR_CODES:
        return 402
    return 400


def auth_error_response(error: AuthError):
    return error_response(
        error.code.value,
        status=auth_error_status(error),
        message=error.message,
        data=error.to_dict(),
    )
