"""User profile endpoints."""

from fastapi import APIRouter, Request

from studymate.api.deps import CurrentPrincipal, DBSession
from studymate.core.errors import NotFoundError
from studymate.core.rate_limit import RateLimits, user_limiter
from studymate.schemas.user import UserResponse
from studymate.services.exceptions import UserProfileNotFoundError
from studymate.services.user_service import UserService

router = APIRouter()


@router.post("/sync", response_model=UserResponse)
@user_limiter.limit(RateLimits.STANDARD)
async def sync_current_user(request: Request, db: DBSession, principal: CurrentPrincipal):
    """Mirror the caller's identity provider profile into the users table."""
    try:
        user = await UserService(db).upsert_profile(principal)
        await db.commit()
    except UserProfileNotFoundError:
        await db.rollback()
        raise NotFoundError("User")

    return user
