"""Exceptions raised by the download services.

Endpoints translate these into API errors; services never build HTTP
responses themselves.
"""


class DownloadError(Exception):
    """Base exception for download flow errors."""

    pass


class UserProfileNotFoundError(DownloadError):
    """Raised when the identity provider has no profile for the caller."""

    pass


class MaterialNotFoundError(DownloadError):
    """Raised when a material (or its file URL) does not exist."""

    pass


class TokenNotFoundError(DownloadError):
    """Raised when no live row exists for a download token."""

    pass


class TokenOwnershipError(DownloadError):
    """Raised when a token is presented by someone other than its owner."""

    pass


class TokenExpiredError(DownloadError):
    """Raised when a token is presented at or after its expiry."""

    pass


class UpstreamFetchError(DownloadError):
    """Raised when blob storage cannot deliver the file."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
