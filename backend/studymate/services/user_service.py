"""User profile synchronization."""

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from studymate.models.base import utc_now
from studymate.models.user import User
from studymate.services.exceptions import UserProfileNotFoundError
from studymate.services.identity import Principal

# INSERT ... ON CONFLICT constructs per backend (SQLite is the test backend)
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class UserService:
    """Keeps the local ``users`` table in step with the identity provider."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert_profile(self, principal: Principal) -> User:
        """
        Insert or refresh the caller's profile row.

        A single ``INSERT ... ON CONFLICT (id) DO UPDATE``, so concurrent
        first requests from one user both succeed. Does not commit, so it
        can join the caller's transaction.

        Raises:
            UserProfileNotFoundError: if the provider exposes no profile
        """
        profile = principal.profile
        if profile is None:
            raise UserProfileNotFoundError(f"No profile for user {principal.user_id}")

        insert = _UPSERT_INSERTS[self.db.get_bind().dialect.name]
        now = utc_now()
        stmt = insert(User).values(
            id=principal.user_id,
            email=profile.email,
            name=profile.name,
            avatar_url=profile.avatar_url,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[User.id],
            set_={
                "email": stmt.excluded.email,
                "name": stmt.excluded.name,
                "avatar_url": stmt.excluded.avatar_url,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.db.execute(stmt)

        result = await self.db.execute(
            select(User)
            .where(User.id == principal.user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
