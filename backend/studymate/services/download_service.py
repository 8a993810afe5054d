"""Download token issuance and redemption.

Issuing a token and redeeming it are two separate requests:

1. ``DownloadTokenIssuer.issue`` records the download, bumps the material's
   counter and stores a fresh token, all in one transaction.
2. ``DownloadTokenRedeemer.redeem`` checks the token, deletes it, and only
   then opens the file in blob storage.

The token row is deleted and committed before the first upstream byte is
requested. Two concurrent redemptions of one token can therefore never both
reach blob storage: the loser's delete affects zero rows and it fails as if
the token never existed. A consumed token is never restored, even if the
upstream fetch fails; the client requests a new token instead.
"""

import logging
import mimetypes
import re
import secrets
import unicodedata
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import quote

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from studymate.core.config import settings
from studymate.core.logging_config import security_event
from studymate.models.base import utc_now
from studymate.models.download import DownloadRecord, DownloadToken
from studymate.models.material import Material
from studymate.services.blob_store import BlobStore, BlobStream
from studymate.services.exceptions import (
    MaterialNotFoundError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenOwnershipError,
)
from studymate.services.identity import Principal
from studymate.services.token_store import TokenStore
from studymate.services.user_service import UserService

security_logger = logging.getLogger("security.downloads")

# 32 random bytes -> 43 URL-safe characters
TOKEN_BYTES = 32

# Control characters (including CR/LF), quotes and backslashes cannot
# appear in a quoted header parameter
_UNSAFE_FILENAME_CHARS = re.compile(r'[\x00-\x1f\x7f"\\]')


# =============================================================================
# Response metadata helpers
# =============================================================================

def sanitize_filename_part(value: str) -> str:
    """Strip characters that could break out of a header value."""
    return _UNSAFE_FILENAME_CHARS.sub("", value or "").strip()


def build_download_filename(title: str, file_type: str) -> str:
    """Synthesize ``"{title}.{file_type}"`` with header-safe characters and no path separators."""
    stem = sanitize_filename_part(title).replace("/", "").strip(". ") or "download"
    extension = sanitize_filename_part(file_type).lstrip(".").replace("/", "")
    return f"{stem}.{extension}" if extension else stem


def content_disposition(filename: str) -> str:
    """Build an attachment Content-Disposition header.

    Carries an ASCII fallback for old clients and the exact UTF-8 name as an
    RFC 5987 ``filename*`` parameter.
    """
    ascii_name = (
        unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    )
    ascii_name = sanitize_filename_part(ascii_name) or "download"
    header = f'attachment; filename="{ascii_name}"'
    if ascii_name != filename:
        header += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return header


def resolve_content_type(upstream_content_type: str | None, file_type: str) -> str:
    """Prefer the blob store's Content-Type, else derive one from the file type."""
    if upstream_content_type:
        return upstream_content_type
    extension = sanitize_filename_part(file_type).lstrip(".").lower()
    guessed, _ = mimetypes.guess_type(f"file.{extension}")
    if guessed:
        return guessed
    if extension:
        return f"application/{extension}"
    return "application/octet-stream"


# =============================================================================
# Issuance
# =============================================================================

@dataclass
class IssuedToken:
    """A freshly minted download token."""

    token: str
    material_id: str
    expires_at: datetime


class DownloadTokenIssuer:
    """Records a download and mints a single-use token for it."""

    def __init__(
        self,
        db: AsyncSession,
        token_store: TokenStore,
        ttl_seconds: int | None = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.token_store = token_store
        self.ttl = timedelta(
            seconds=ttl_seconds if ttl_seconds is not None else settings.DOWNLOAD_TOKEN_TTL_SECONDS
        )
        self.now = now

    async def issue(self, principal: Principal, material_id: str) -> IssuedToken:
        """
        Issue a download token for ``material_id`` to ``principal``.

        In a single transaction:
        1. Upsert the caller's profile
        2. Append a DownloadRecord
        3. Increment Material.downloads by one (in SQL, so concurrent
           issuances never lose an increment)
        4. Generate an unguessable token
        5. Store it with expires_at = now + TTL

        Nothing from steps 2-5 survives a failure at any step.

        Raises:
            UserProfileNotFoundError: caller has no provider profile
            MaterialNotFoundError: material does not exist
        """
        try:
            await UserService(self.db).upsert_profile(principal)

            material = await self.db.get(Material, material_id)
            if material is None:
                raise MaterialNotFoundError(f"Material {material_id} not found")

            self.db.add(DownloadRecord(material_id=material_id, user_id=principal.user_id))
            await self.db.flush()

            await self.db.execute(
                update(Material)
                .where(Material.id == material_id)
                .values(downloads=Material.downloads + 1)
            )

            issued_at = self.now()
            row = DownloadToken(
                token=secrets.token_urlsafe(TOKEN_BYTES),
                material_id=material_id,
                user_id=principal.user_id,
                expires_at=issued_at + self.ttl,
                created_at=issued_at,
            )
            await self.token_store.create(row)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        security_logger.info(
            "Download token issued",
            extra=security_event(
                "download.token_issued",
                user_id=principal.user_id,
                material_id=material_id,
                expires_at=row.expires_at.isoformat(),
            ),
        )

        return IssuedToken(token=row.token, material_id=material_id, expires_at=row.expires_at)


# =============================================================================
# Redemption
# =============================================================================

@dataclass
class RedeemedFile:
    """A consumed token's file, ready to be relayed to the client."""

    stream: BlobStream
    content_type: str
    filename: str
    material_id: str


class DownloadTokenRedeemer:
    """Validates and consumes download tokens, then opens the file upstream."""

    def __init__(
        self,
        db: AsyncSession,
        token_store: TokenStore,
        blob_store: BlobStore,
        now: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.token_store = token_store
        self.blob_store = blob_store
        self.now = now

    async def _consume(self, principal: Principal, token: str) -> str:
        """Run the token state machine; return the material id on success.

        | State       | Action          | Result               |
        |-------------|-----------------|----------------------|
        | missing     | none            | TokenNotFoundError   |
        | wrong owner | row untouched   | TokenOwnershipError  |
        | expired     | delete + commit | TokenExpiredError    |
        | valid       | delete + commit | material id          |
        """
        try:
            row = await self.token_store.find_by_token(token, lock=True)

            if row is None:
                await self.db.rollback()
                raise TokenNotFoundError("Download token not found")

            owner_id = row.user_id
            material_id = row.material_id

            if owner_id != principal.user_id:
                # Release the lock without consuming: the owner may still use it
                await self.db.rollback()
                security_logger.warning(
                    "Download token presented by non-owner",
                    extra=security_event(
                        "download.token_wrong_owner",
                        user_id=principal.user_id,
                        material_id=material_id,
                        owner_id=owner_id,
                    ),
                )
                raise TokenOwnershipError("Download token does not belong to this user")

            if row.is_expired_at(self.now()):
                await self.token_store.delete(token)
                await self.db.commit()
                security_logger.info(
                    "Expired download token discarded",
                    extra=security_event(
                        "download.token_expired",
                        user_id=principal.user_id,
                        material_id=material_id,
                    ),
                )
                raise TokenExpiredError("Download token has expired")

            consumed = await self.token_store.delete(token)
            if not consumed:
                # A concurrent redemption deleted it first
                await self.db.rollback()
                raise TokenNotFoundError("Download token not found")

            await self.db.commit()
        except (TokenNotFoundError, TokenOwnershipError, TokenExpiredError):
            raise
        except Exception:
            await self.db.rollback()
            raise

        return material_id

    async def redeem(self, principal: Principal, token: str) -> RedeemedFile:
        """
        Consume ``token`` and open its file for streaming.

        Raises:
            TokenNotFoundError: no live token (never issued, used, or reaped)
            TokenOwnershipError: token belongs to another user (not consumed)
            TokenExpiredError: token past expiry (consumed)
            MaterialNotFoundError: material or its file URL is gone
            UpstreamFetchError: blob storage failed; the token stays consumed
        """
        material_id = await self._consume(principal, token)

        material = await self.db.get(Material, material_id)
        if material is None or not material.file_url:
            raise MaterialNotFoundError(f"Material {material_id} not found or file URL missing")

        stream = await self.blob_store.open(material.file_url)

        security_logger.info(
            "Download token redeemed",
            extra=security_event(
                "download.token_redeemed",
                user_id=principal.user_id,
                material_id=material_id,
            ),
        )

        return RedeemedFile(
            stream=stream,
            content_type=resolve_content_type(stream.content_type, material.file_type),
            filename=build_download_filename(material.title, material.file_type),
            material_id=material_id,
        )
