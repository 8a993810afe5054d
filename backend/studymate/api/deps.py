"""API dependencies for dependency injection.

Every external capability (database session, identity provider, blob store)
reaches the endpoints through a dependency here, so tests swap them with
``app.dependency_overrides``.
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from studymate.core.config import settings
from studymate.core.errors import UnauthorizedError
from studymate.core.logging_config import security_event
from studymate.core.middleware import redact_token_from_path
from studymate.db.session import get_db
from studymate.services.blob_store import BlobStore, HttpBlobStore
from studymate.services.identity import IdentityProvider, JWTIdentityProvider, Principal
from studymate.services.token_store import SqlTokenStore, TokenStore

# Security audit logger - separate from general logging for alerting
auth_logger = logging.getLogger("security.auth")


@lru_cache
def get_identity_provider() -> IdentityProvider:
    """Identity provider configured from settings."""
    return JWTIdentityProvider.from_settings(settings)


@lru_cache
def get_blob_store() -> BlobStore:
    """Blob store configured from settings."""
    return HttpBlobStore(
        timeout=settings.BLOB_FETCH_TIMEOUT_SECONDS,
        chunk_size=settings.BLOB_STREAM_CHUNK_SIZE,
        allowed_hosts=settings.ALLOWED_BLOB_HOSTS,
    )


def get_token_store(db: Annotated[AsyncSession, Depends(get_db)]) -> TokenStore:
    """Token store bound to the request's session."""
    return SqlTokenStore(db)


async def get_current_principal(
    request: Request,
    identity: Annotated[IdentityProvider, Depends(get_identity_provider)],
) -> Principal:
    """Resolve the caller or fail with 401."""
    principal = await identity.resolve_caller(request)

    if principal is None:
        auth_logger.info(
            "Unauthenticated request rejected",
            extra=security_event(
                "auth.unauthenticated",
                path=redact_token_from_path(request.url.path),
                method=request.method,
                ip_address=request.client.host if request.client else None,
            ),
        )
        raise UnauthorizedError()

    # Used by the per-user rate limiter
    request.state.principal = principal
    return principal


# Type aliases for commonly used dependencies
DBSession = Annotated[AsyncSession, Depends(get_db)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
TokenStoreDep = Annotated[TokenStore, Depends(get_token_store)]
BlobStoreDep = Annotated[BlobStore, Depends(get_blob_store)]
