"""
API error contract.

Every error leaving the API is rendered as

    {"error": ..., "code": ..., "message": ..., "timestamp": ..., "request_id": ...}

so clients branch on ``code`` instead of parsing messages. The download
client, for example, asks for a fresh token on ``DL_4102`` (expired) and
``DL_5201`` (storage failure), and gives up on ``DL_4101`` (forbidden).
"""

from datetime import datetime, timezone
from enum import Enum

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    # Caller identity
    AUTH_REQUIRED = "AUTH_1001"

    # Request shape
    INVALID_REQUEST = "REQ_3001"
    VALIDATION_FAILED = "REQ_3002"

    # Catalog and profile lookups
    NOT_FOUND = "RES_4001"
    CONFLICT = "RES_4005"

    # Download tokens
    TOKEN_FORBIDDEN = "DL_4101"
    TOKEN_EXPIRED = "DL_4102"
    STORAGE_UNAVAILABLE = "DL_5201"

    # Server
    INTERNAL_ERROR = "SYS_6001"
    RATE_LIMITED = "SYS_6004"
    SERVICE_UNAVAILABLE = "SYS_6005"


class APIException(HTTPException):
    """HTTPException carrying an ``ErrorCode``."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        message: str,
        headers: dict[str, str] | None = None,
    ):
        self.code = code
        self.message = message
        super().__init__(status_code=status_code, detail=message, headers=headers)


class NotFoundError(APIException):
    def __init__(self, resource: str, resource_id: str | None = None):
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, message)


class UnauthorizedError(APIException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            ErrorCode.AUTH_REQUIRED,
            message,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(APIException):
    def __init__(self, message: str = "Not allowed"):
        super().__init__(status.HTTP_403_FORBIDDEN, ErrorCode.TOKEN_FORBIDDEN, message)


class GoneError(APIException):
    """The resource existed but can no longer be used."""

    def __init__(self, message: str = "Expired"):
        super().__init__(status.HTTP_410_GONE, ErrorCode.TOKEN_EXPIRED, message)


class UpstreamError(APIException):
    """Blob storage could not deliver the file."""

    def __init__(self, message: str = "Failed to retrieve file"):
        super().__init__(status.HTTP_502_BAD_GATEWAY, ErrorCode.STORAGE_UNAVAILABLE, message)


# Codes for plain HTTPExceptions raised by FastAPI/Starlette themselves
STATUS_CODE_MAP: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_REQUEST,
    401: ErrorCode.AUTH_REQUIRED,
    403: ErrorCode.TOKEN_FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.INVALID_REQUEST,
    409: ErrorCode.CONFLICT,
    410: ErrorCode.TOKEN_EXPIRED,
    422: ErrorCode.VALIDATION_FAILED,
    429: ErrorCode.RATE_LIMITED,
    502: ErrorCode.STORAGE_UNAVAILABLE,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def create_error_response(
    code: ErrorCode,
    message: str,
    request_id: str | None = None,
) -> dict:
    """Build the error body."""
    body = {
        "error": code.name.replace("_", " ").capitalize(),
        "code": code.value,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if request_id:
        body["request_id"] = request_id
    return body


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.code, exc.message, _request_id(request)),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render framework-raised HTTPExceptions (404 route, 405, ...) in the same shape."""
    code = STATUS_CODE_MAP.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(code, message, _request_id(request)),
        headers=getattr(exc, "headers", None),
    )
