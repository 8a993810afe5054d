"""Database models for StudyMate."""

from studymate.models.download import DownloadRecord, DownloadToken
from studymate.models.material import Material
from studymate.models.user import User

__all__ = [
    "User",
    "Material",
    # Downloads
    "DownloadRecord",
    "DownloadToken",
]
