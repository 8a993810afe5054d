"""Persistence for download tokens.

The store holds no business rules and never commits: callers own the
transaction, so token writes can join the issuance transaction and token
deletes can be committed before any file byte is served.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from studymate.models.download import DownloadToken


class TokenStore(ABC):
    """Interface for download token persistence."""

    @abstractmethod
    async def create(self, row: DownloadToken) -> None:
        """Persist a new token row."""

    @abstractmethod
    async def find_by_token(self, token: str, lock: bool = False) -> DownloadToken | None:
        """Return the live row for ``token``.

        With ``lock=True`` the row is locked until the caller's transaction
        ends, on backends that support row locks.
        """

    @abstractmethod
    async def delete(self, token: str) -> bool:
        """Delete the row for ``token``; True only if this call removed it."""

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Delete every row expired at ``now``; returns how many were removed."""


class SqlTokenStore(TokenStore):
    """Token store over an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, row: DownloadToken) -> None:
        self.db.add(row)
        await self.db.flush()

    async def find_by_token(self, token: str, lock: bool = False) -> DownloadToken | None:
        query = select(DownloadToken).where(DownloadToken.token == token)
        if lock:
            # Serializes concurrent redeemers of the same token on PostgreSQL;
            # SQLite ignores it and relies on the rowcount check in delete()
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def delete(self, token: str) -> bool:
        result = await self.db.execute(
            delete(DownloadToken)
            .where(DownloadToken.token == token)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete_expired(self, now: datetime) -> int:
        result = await self.db.execute(
            delete(DownloadToken)
            .where(DownloadToken.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
