"""HTTP middleware and log filters protecting download tokens.

A download token sits in the URL path of ``/downloads/secure/{token}``.
Whoever holds a live token (and its owner's session) can consume it, so the
token must not show up in access logs, exception text or Referer headers.
"""

import logging
import re
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

# Tokens are secrets.token_urlsafe() output: [A-Za-z0-9_-]
SECURE_DOWNLOAD_PATH_PATTERN = re.compile(r"(/downloads/secure/)([A-Za-z0-9_-]+)")
TOKEN_REDACTED = "[TOKEN_REDACTED]"

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

BASE_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=()",
}


def redact_token_from_path(text: str) -> str:
    """Replace every download token in ``text`` with a marker."""
    return SECURE_DOWNLOAD_PATH_PATTERN.sub(rf"\1{TOKEN_REDACTED}", text)


def is_secure_download_path(path: str) -> bool:
    return SECURE_DOWNLOAD_PATH_PATTERN.search(path) is not None


def _redact(value):
    return redact_token_from_path(value) if isinstance(value, str) else value


class TokenRedactionFilter(logging.Filter):
    """Scrub download tokens from a record's message and arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = _redact(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(_redact(arg) for arg in record.args)
        elif isinstance(record.args, dict):
            record.args = {key: _redact(value) for key, value in record.args.items()}
        return True


def install_token_redaction_logging() -> None:
    """Attach ``TokenRedactionFilter`` to the root logger and its handlers.

    Handler filters also see records propagated from child loggers, which
    logger filters do not. Call after ``configure_logging``.
    """
    redaction_filter = TokenRedactionFilter()
    root = logging.getLogger()
    root.addFilter(redaction_filter)
    for handler in root.handlers:
        handler.addFilter(redaction_filter)


def redact_exception_args(exc: Exception) -> Exception:
    """Scrub download tokens from ``exc.args`` in place."""
    exc.args = tuple(_redact(arg) for arg in exc.args)
    return exc


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Expose a request id on ``request.state`` and echo it back.

    A well-formed incoming ``X-Request-ID`` is reused; anything else is
    replaced with a fresh UUID.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Baseline hardening headers; API responses are uncacheable unless the
    endpoint says otherwise."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        for name, value in BASE_SECURITY_HEADERS.items():
            response.headers[name] = value
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")

        if request.url.path.startswith("/api/"):
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
            response.headers.setdefault("Cache-Control", "no-store")

        return response


class TokenRedactionMiddleware(BaseHTTPMiddleware):
    """Send ``Referrer-Policy: no-referrer`` on every token-bearing URL,
    error responses included."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        if is_secure_download_path(request.url.path):
            response.headers["Referrer-Policy"] = "no-referrer"
        return response
