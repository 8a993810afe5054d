"""Tests for rate limit keys."""

from starlette.requests import Request

from studymate.core.rate_limit import get_user_identifier
from studymate.services.identity import Principal


def make_request() -> Request:
    return Request(
        {"type": "http", "method": "POST", "path": "/", "headers": [], "client": ("10.0.0.7", 5123)}
    )


def test_authenticated_requests_are_keyed_by_user():
    request = make_request()
    request.state.principal = Principal(user_id="user_alice")

    assert get_user_identifier(request) == "user:user_alice"


def test_anonymous_requests_fall_back_to_ip():
    assert get_user_identifier(make_request()) == "ip:10.0.0.7"
