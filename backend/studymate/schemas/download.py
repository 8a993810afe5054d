"""Download token schemas."""

from datetime import datetime

from pydantic import BaseModel


class DownloadTokenResponse(BaseModel):
    """A minted single-use download token."""

    success: bool = True
    token: str
    material_id: str
    expires_at: datetime
    download_url: str
