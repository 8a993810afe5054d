"""Download tracking and single-use download token models.

Security Properties of DownloadToken:
- Opaque: the token is random URL-safe text (256 bits), not a decodable JWT
- User-bound: only the user it was issued to may redeem it
- Single-use: the row is deleted by the redemption that grants access
- Short-lived: expires_at is fixed at issuance and never extended
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studymate.db.session import Base
from studymate.models.base import UUIDMixin, as_utc, utc_now


class DownloadRecord(Base, UUIDMixin):
    """Append-only fact: a user downloaded a material.

    Written once per issued download token. Never updated or deleted.
    """

    __tablename__ = "downloads"

    material_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("materials.id"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("users.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class DownloadToken(Base, UUIDMixin):
    """Single-use, user-bound, time-limited download credential.

    Only the token store creates and deletes these rows.
    """

    __tablename__ = "download_tokens"

    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    material_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("materials.id"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("users.id"), nullable=False
    )

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    material: Mapped["Material"] = relationship()

    __table_args__ = (
        # Reaper scans by expiry
        Index("ix_download_tokens_expires_at", "expires_at"),
    )

    def is_expired_at(self, now: datetime) -> bool:
        """A token is expired at or after its expiry instant."""
        return as_utc(now) >= as_utc(self.expires_at)


from studymate.models.material import Material  # noqa: E402
