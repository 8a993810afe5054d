"""Download endpoints with single-use token support.

Downloading is a two-step exchange:
1. ``POST /materials/{material_id}/download`` records the download and
   returns a token bound to the caller, valid for a few minutes.
2. ``GET /downloads/secure/{token}`` consumes the token and streams the
   file through the API as an attachment.

The blob URL never reaches the client, so the only way to a file is a
token that works once, for one user, before it expires.
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from studymate.api.deps import BlobStoreDep, CurrentPrincipal, DBSession, TokenStoreDep
from studymate.core.config import settings
from studymate.core.errors import (
    ForbiddenError,
    GoneError,
    NotFoundError,
    UpstreamError,
)
from studymate.core.rate_limit import RateLimits, user_limiter
from studymate.schemas.download import DownloadTokenResponse
from studymate.services.download_service import (
    DownloadTokenIssuer,
    DownloadTokenRedeemer,
    content_disposition,
)
from studymate.services.exceptions import (
    MaterialNotFoundError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenOwnershipError,
    UpstreamFetchError,
    UserProfileNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Headers for relayed files
SECURE_DOWNLOAD_HEADERS = {
    # Prevent caching in shared caches (CDNs, proxies)
    "Cache-Control": "private, no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
    # Prevent content sniffing
    "X-Content-Type-Options": "nosniff",
    # Prevent token leakage via Referer header
    "Referrer-Policy": "no-referrer",
}


def secure_download_path(token: str) -> str:
    return f"{settings.API_V1_PREFIX}/downloads/secure/{token}"


# =============================================================================
# Token Issuance
# =============================================================================

@router.post(
    "/materials/{material_id}/download",
    response_model=DownloadTokenResponse,
    status_code=status.HTTP_200_OK,
)
@user_limiter.limit(RateLimits.DOWNLOAD_ISSUE)
async def issue_download_token(
    request: Request,
    material_id: str,
    db: DBSession,
    token_store: TokenStoreDep,
    principal: CurrentPrincipal,
):
    """
    Record a download of a material and mint a single-use download token.

    Properties of the returned token:
    - Bound to the calling user
    - Consumed by its first successful redemption
    - Expires after DOWNLOAD_TOKEN_TTL_SECONDS (default 5 minutes)

    The download record, counter increment and token are written in one
    transaction.
    """
    issuer = DownloadTokenIssuer(db, token_store)

    try:
        issued = await issuer.issue(principal, material_id)
    except UserProfileNotFoundError:
        raise NotFoundError("User")
    except MaterialNotFoundError:
        raise NotFoundError("Material", material_id)

    return DownloadTokenResponse(
        token=issued.token,
        material_id=issued.material_id,
        expires_at=issued.expires_at,
        download_url=secure_download_path(issued.token),
    )


# =============================================================================
# Secure Download (Single-Use Token)
# =============================================================================

@router.get("/downloads/secure/{token}")
@user_limiter.limit(RateLimits.DOWNLOAD_REDEEM)
async def download_with_token(
    request: Request,
    token: str,
    db: DBSession,
    token_store: TokenStoreDep,
    blob_store: BlobStoreDep,
    principal: CurrentPrincipal,
):
    """
    Redeem a download token and stream the file as an attachment.

    - 404: token unknown, already used, or its material is gone
    - 403: token belongs to another user (the token stays valid for its owner)
    - 410: token expired (and is now deleted; request a new one)
    - 502: blob storage failed (the token is consumed; request a new one)
    """
    redeemer = DownloadTokenRedeemer(db, token_store, blob_store)

    try:
        redeemed = await redeemer.redeem(principal, token)
    except TokenNotFoundError:
        raise NotFoundError("Download token")
    except TokenOwnershipError:
        raise ForbiddenError("Download token does not belong to this user")
    except TokenExpiredError:
        raise GoneError("Download token has expired")
    except MaterialNotFoundError:
        raise NotFoundError("Material")
    except UpstreamFetchError as e:
        logger.error(
            "Upstream fetch failed for consumed download token",
            extra={
                "event_type": "download.upstream_failure",
                "upstream_status": e.status_code,
                "user_id": principal.user_id,
            },
        )
        raise UpstreamError()

    headers = dict(SECURE_DOWNLOAD_HEADERS)
    headers["Content-Disposition"] = content_disposition(redeemed.filename)
    if redeemed.stream.content_length is not None:
        headers["Content-Length"] = str(redeemed.stream.content_length)

    return StreamingResponse(
        redeemed.stream.iter_bytes(),
        media_type=redeemed.content_type,
        headers=headers,
        background=BackgroundTask(redeemed.stream.aclose),
    )
