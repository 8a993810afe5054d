"""Unit tests for token redaction middleware and logging filters.

Download tokens travel in the URL path of the secure download endpoint and
must not leak into logs or exception messages.
"""

import logging

from studymate.core.middleware import (
    SECURE_DOWNLOAD_PATH_PATTERN,
    TOKEN_REDACTED,
    TokenRedactionFilter,
    is_secure_download_path,
    redact_exception_args,
    redact_token_from_path,
)

TOKEN = "Zq3vK9_xT-2mP8rLwY5nB1cD4eF6gH7iJ0kA3sU9oVw"


class TestRedactTokenFromPath:

    def test_redacts_token_in_secure_download_path(self):
        result = redact_token_from_path(f"/api/v1/downloads/secure/{TOKEN}")
        assert result == f"/api/v1/downloads/secure/{TOKEN_REDACTED}"
        assert TOKEN not in result

    def test_redacts_token_inside_log_message(self):
        message = f'127.0.0.1 - "GET /api/v1/downloads/secure/{TOKEN} HTTP/1.1" 200'
        result = redact_token_from_path(message)
        assert TOKEN not in result
        assert TOKEN_REDACTED in result

    def test_preserves_other_paths(self):
        paths = [
            "/api/v1/materials",
            "/api/v1/materials/abc-123/download",
            "/health",
            "/",
        ]
        for path in paths:
            assert redact_token_from_path(path) == path

    def test_handles_empty_string(self):
        assert redact_token_from_path("") == ""

    def test_path_without_token_unchanged(self):
        assert redact_token_from_path("/api/v1/downloads/secure/") == "/api/v1/downloads/secure/"


class TestIsSecureDownloadPath:

    def test_identifies_secure_paths(self):
        assert is_secure_download_path(f"/api/v1/downloads/secure/{TOKEN}") is True

    def test_rejects_other_paths(self):
        assert is_secure_download_path("/api/v1/materials/123/download") is False
        assert is_secure_download_path("/api/v1/downloads/secure/") is False

    def test_pattern_captures_token(self):
        match = SECURE_DOWNLOAD_PATH_PATTERN.search(f"/downloads/secure/{TOKEN}")
        assert match.group(2) == TOKEN


class TestTokenRedactionFilter:

    def make_record(self, msg, args=None) -> logging.LogRecord:
        return logging.LogRecord(
            name="uvicorn.access",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=args,
            exc_info=None,
        )

    def test_redacts_message(self):
        record = self.make_record(f"GET /api/v1/downloads/secure/{TOKEN}")
        assert TokenRedactionFilter().filter(record) is True
        assert TOKEN not in record.getMessage()

    def test_redacts_tuple_args(self):
        record = self.make_record(
            '%s - "%s %s HTTP/%s" %d',
            ("127.0.0.1", "GET", f"/api/v1/downloads/secure/{TOKEN}", "1.1", 200),
        )
        TokenRedactionFilter().filter(record)
        message = record.getMessage()
        assert TOKEN not in message
        assert "200" in message

    def test_redacts_dict_args(self):
        record = self.make_record("%(path)s", ({"path": f"/downloads/secure/{TOKEN}"},))
        TokenRedactionFilter().filter(record)
        assert TOKEN not in record.getMessage()

    def test_installed_filter_redacts_through_logger(self, caplog):
        logger = logging.getLogger("studymate.test_redaction")
        logger.addFilter(TokenRedactionFilter())

        with caplog.at_level(logging.INFO, logger="studymate.test_redaction"):
            logger.info("redeeming %s", f"/api/v1/downloads/secure/{TOKEN}")

        assert TOKEN not in caplog.text
        assert TOKEN_REDACTED in caplog.text


class TestRedactExceptionArgs:

    def test_redacts_string_args(self):
        exc = ValueError(f"bad path /downloads/secure/{TOKEN}", 42)
        redacted = redact_exception_args(exc)
        assert redacted is exc
        assert TOKEN not in str(exc.args[0])
        assert exc.args[1] == 42
