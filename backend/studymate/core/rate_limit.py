"""Rate limiting configuration.

Issuing download tokens writes three rows per call, and catalog writes are
user-driven, so both are limited per authenticated user. Public catalog
reads are limited per IP.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from studymate.core.config import settings
from studymate.core.errors import ErrorCode, create_error_response


def get_user_identifier(request: Request) -> str:
    """
    Get rate limit key based on authenticated user.

    Falls back to IP address if user not authenticated.
    Uses format: user:{user_id} or ip:{ip_address}
    """
    # Set by the identity dependency once the caller is resolved
    principal = getattr(request.state, "principal", None)
    if principal is not None and getattr(principal, "user_id", None):
        return f"user:{principal.user_id}"

    return f"ip:{get_remote_address(request)}"


# IP-based limiter (for unauthenticated endpoints)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

# User-based limiter (for authenticated endpoints)
user_limiter = Limiter(key_func=get_user_identifier, enabled=settings.RATE_LIMIT_ENABLED)


class RateLimits:
    """
    Centralized rate limit configurations.

    Format: "X/period" where period is: second, minute, hour, day
    Multiple limits can be combined: "100/minute;1000/hour"
    """

    STANDARD = f"{settings.RATE_LIMIT_PER_MINUTE}/minute"

    # Catalog browsing
    SEARCH = "60/minute;1000/hour"

    # Catalog writes (metadata for an already uploaded blob)
    MATERIAL_CREATE = "20/minute;200/hour"

    # Download token issuance (records a download on every call)
    DOWNLOAD_ISSUE = "30/minute;300/hour"

    # Token redemption (streams file bytes)
    DOWNLOAD_REDEEM = "60/minute;600/hour"



async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render slowapi's 429 in the standard error shape."""
    return JSONResponse(
        status_code=429,
        content=create_error_response(
            ErrorCode.RATE_LIMITED,
            f"Rate limit exceeded: {exc.detail}",
            getattr(request.state, "request_id", None),
        ),
        headers={"Retry-After": "60"},
    )
