"""Error codes and the single error envelope used by every route"""

from typing import Optional

from fastapi import HTTPException

VALIDATION_ERROR = "VALIDATION_ERROR"
INVALID_ID = "INVALID_ID"
UNAUTHORIZED = "UNAUTHORIZED"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
USER_NOT_FOUND = "USER_NOT_FOUND"
INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
PROVIDER_BOOKING_RESTRICTED = "PROVIDER_BOOKING_RESTRICTED"
SELF_BOOKING_NOT_ALLOWED = "SELF_BOOKING_NOT_ALLOWED"
SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
SERVICE_INACTIVE = "SERVICE_INACTIVE"
BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
BOOKING_CLOSED = "BOOKING_CLOSED"
INVALID_STATUS = "INVALID_STATUS"
ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
NOT_BOOKING_PARTY = "NOT_BOOKING_PARTY"
REVIEW_NOT_ALLOWED = "REVIEW_NOT_ALLOWED"
DUPLICATE = "DUPLICATE"
NOT_FOUND = "NOT_FOUND"
SERVER_ERROR = "SERVER_ERROR"

STATUS_CODES = {
    400: VALIDATION_ERROR,
    401: UNAUTHORIZED,
    403: INSUFFICIENT_PERMISSIONS,
    404: NOT_FOUND,
    409: DUPLICATE,
    500: SERVER_ERROR,
}


class ApiError(HTTPException):
    """HTTPException carrying a machine readable error code"""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        headers: Optional[dict] = None,
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code = code
        self.message = message


def error_body(code: str, message: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message}}


def code_for_status(status_code: int) -> str:
    return STATUS_CODES.get(status_code, SERVER_ERROR if status_code >= 500 else VALIDATION_ERROR)
