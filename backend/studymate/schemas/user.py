"""User profile schemas."""

from datetime import datetime

from studymate.schemas.common import BaseSchema


class UploaderSummary(BaseSchema):
    """Public fields of a material's uploader."""

    id: str
    name: str
    email: str
    avatar_url: str | None = None


class UserResponse(UploaderSummary):
    """Synced profile returned to its owner."""

    created_at: datetime
    updated_at: datetime
