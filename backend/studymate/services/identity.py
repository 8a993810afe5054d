"""Identity provider integration.

Sign-in, sign-up and sessions are owned by an external identity provider.
The API only needs to answer one question per request: who is calling?
The provider's session JWT is verified locally and its claims carry the
profile attributes mirrored into the ``users`` table.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import jwt
from fastapi import Request
from jwt.exceptions import (
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
)

from studymate.core.config import Settings

auth_logger = logging.getLogger("security.auth")


@dataclass(frozen=True)
class UserProfile:
    """Profile attributes held by the identity provider."""

    email: str
    name: str
    avatar_url: str | None = None


@dataclass(frozen=True)
class Principal:
    """An authenticated caller.

    ``profile`` is None when the provider authenticated the caller but
    exposes no profile for them.
    """

    user_id: str
    profile: UserProfile | None = None


class IdentityProvider(ABC):
    """Resolves the caller of a request."""

    @abstractmethod
    async def resolve_caller(self, request: Request) -> Principal | None:
        """Return the authenticated principal, or None when unauthenticated."""


def display_name_from_claims(claims: dict) -> str:
    """Build a display name the way the profile sync always has:
    "first last", else username, else "User"."""
    first = claims.get("given_name") or claims.get("first_name") or ""
    last = claims.get("family_name") or claims.get("last_name") or ""
    full = f"{first} {last}".strip()
    return full or claims.get("name") or claims.get("username") or "User"


def profile_from_claims(claims: dict) -> UserProfile | None:
    """Extract a profile from session claims; None when no email is present."""
    email = claims.get("email")
    if not email:
        return None
    return UserProfile(
        email=email,
        name=display_name_from_claims(claims),
        avatar_url=claims.get("picture") or claims.get("image_url"),
    )


class JWTIdentityProvider(IdentityProvider):
    """
    Identity provider backed by the provider's signed session tokens.

    Validates ``Authorization: Bearer <jwt>``:
    - Signature (HS256 shared secret or RS256/ES256 public key)
    - Expiry, and issuer/audience when configured
    - Presence of ``sub``
    """

    def __init__(
        self,
        key: str,
        algorithm: str = "HS256",
        issuer: str | None = None,
        audience: str | None = None,
    ):
        self._key = key
        self._algorithm = algorithm
        self._issuer = issuer
        self._audience = audience

    @classmethod
    def from_settings(cls, settings: Settings) -> "JWTIdentityProvider":
        if settings.IDENTITY_JWT_ALGORITHM.startswith("HS"):
            key = settings.IDENTITY_JWT_SECRET
        else:
            key = settings.IDENTITY_JWT_PUBLIC_KEY
        return cls(
            key=key,
            algorithm=settings.IDENTITY_JWT_ALGORITHM,
            issuer=settings.IDENTITY_JWT_ISSUER,
            audience=settings.IDENTITY_JWT_AUDIENCE,
        )

    @staticmethod
    def _bearer_token(request: Request) -> str | None:
        header = request.headers.get("authorization", "")
        scheme, _, credentials = header.partition(" ")
        if scheme.lower() != "bearer" or not credentials.strip():
            return None
        return credentials.strip()

    def decode(self, token: str) -> dict | None:
        """Verify a session token and return its claims, or None."""
        if not self._key:
            auth_logger.error("Identity verification key is not configured")
            return None

        options = {"require": ["exp", "sub"]}
        if self._audience is None:
            options["verify_aud"] = False

        try:
            return jwt.decode(
                token,
                self._key,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                audience=self._audience,
                options=options,
            )
        except ExpiredSignatureError:
            auth_logger.info("Rejected expired session token")
        except (InvalidIssuerError, InvalidAudienceError) as e:
            auth_logger.warning("Rejected session token from unexpected issuer/audience: %s", e)
        except InvalidTokenError as e:
            auth_logger.warning("Rejected invalid session token: %s", type(e).__name__)
        return None

    async def resolve_caller(self, request: Request) -> Principal | None:
        token = self._bearer_token(request)
        if token is None:
            return None

        claims = self.decode(token)
        if claims is None:
            return None

        user_id = claims.get("sub")
        if not user_id:
            return None

        return Principal(user_id=str(user_id), profile=profile_from_claims(claims))
