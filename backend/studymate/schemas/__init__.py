"""Pydantic schemas for API request/response validation."""

from studymate.schemas.common import BaseSchema, HealthResponse, PaginatedResponse
from studymate.schemas.download import DownloadTokenResponse
from studymate.schemas.material import MaterialCreate, MaterialResponse
from studymate.schemas.user import UploaderSummary, UserResponse

__all__ = [
    # Common
    "BaseSchema",
    "HealthResponse",
    "PaginatedResponse",
    # Downloads
    "DownloadTokenResponse",
    # Materials
    "MaterialCreate",
    "MaterialResponse",
    # Users
    "UploaderSummary",
    "UserResponse",
]
