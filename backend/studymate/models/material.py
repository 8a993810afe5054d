"""Study material catalog model."""

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studymate.db.session import Base
from studymate.models.base import TimestampMixin, UUIDMixin


class Material(Base, UUIDMixin, TimestampMixin):
    """A catalog entry pointing at file bytes held in blob storage."""

    __tablename__ = "materials"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    course: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[str] = mapped_column(String(20), nullable=False)
    semester: Mapped[str] = mapped_column(String(20), nullable=False)
    material_type: Mapped[str] = mapped_column(String(50), nullable=False)  # notes, question_paper, assignment

    # File stored externally; file_url is a capability link to the blob
    file_type: Mapped[str] = mapped_column(String(20), nullable=False)  # pdf, docx, ...
    file_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    file_size: Mapped[int | None] = mapped_column(BigInteger)

    uploaded_by: Mapped[str] = mapped_column(String(255), ForeignKey("users.id"), nullable=False)

    # Incremented only by download token issuance
    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    uploader: Mapped["User"] = relationship(back_populates="materials")

    __table_args__ = (
        Index("ix_materials_course_year_semester", "course", "year", "semester"),
        Index("ix_materials_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Material {self.id} {self.title!r}>"


from studymate.models.user import User  # noqa: E402
