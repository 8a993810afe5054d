"""User profile model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studymate.db.session import Base
from studymate.models.base import TimestampMixin


class User(Base, TimestampMixin):
    """Local mirror of an identity provider profile.

    The primary key is the provider's principal id, so the row can be
    upserted idempotently every time the user writes something.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="User")
    avatar_url: Mapped[str | None] = mapped_column(String(1024))

    materials: Mapped[list["Material"]] = relationship(back_populates="uploader")

    def __repr__(self) -> str:
        return f"<User {self.id}>"


from studymate.models.material import Material  # noqa: E402
