"""Material catalog schemas."""

from datetime import datetime

from pydantic import Field, HttpUrl, field_validator

from studymate.schemas.common import BaseSchema
from studymate.schemas.user import UploaderSummary


class MaterialCreate(BaseSchema):
    """Metadata for a file already uploaded to blob storage."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    subject: str = Field(..., min_length=1, max_length=255)
    course: str = Field(..., min_length=1, max_length=100)
    year: str = Field(..., min_length=1, max_length=20)
    semester: str = Field(..., min_length=1, max_length=20)
    material_type: str = Field(..., min_length=1, max_length=50)
    file_type: str = Field(..., min_length=1, max_length=20)
    file_url: HttpUrl
    file_size: int | None = Field(None, ge=0)

    @field_validator("title", "subject", "course", "year", "semester", "material_type", "file_type")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("file_type")
    @classmethod
    def normalize_file_type(cls, v: str) -> str:
        return v.lstrip(".").lower()


class MaterialResponse(BaseSchema):
    """Catalog entry as returned to clients.

    ``file_url`` is deliberately absent: files are only reachable through
    single-use download tokens.
    """

    id: str
    title: str
    description: str | None = None
    subject: str
    course: str
    year: str
    semester: str
    material_type: str
    file_type: str
    file_size: int | None = None
    downloads: int
    uploaded_by: str
    uploader: UploaderSummary | None = None
    created_at: datetime
    updated_at: datetime
