"""Tests for fetch models and the error taxonomy."""

from meteogram.models.errors import (
    TRANSIENT_ERRORS,
    FetchTimeout,
    InvalidSource,
    MeteogramError,
    NetworkFailure,
    ParseError,
)
from meteogram.models.fetch import TERMINAL_STATES, CacheValidators, FetchState


class TestCacheValidators:
    def test_empty(self):
        assert not CacheValidators().present
        assert not CacheValidators(last_request_url="https://example.com/").present

    def test_either_validator(self):
        assert CacheValidators(etag='"x"').present
        assert CacheValidators(last_modified="Fri, 16 Oct 2026 10:00:00 GMT").present


class TestFetchState:
    def test_terminal_states(self):
        assert TERMINAL_STATES == {FetchState.SUCCESS, FetchState.NOT_MODIFIED, FetchState.FAILED}
        assert FetchState.RETRYING not in TERMINAL_STATES


class TestErrors:
    def test_message_attribute(self):
        e = InvalidSource("Invalid Source URL provided.")
        assert e.message == "Invalid Source URL provided."
        assert str(e) == e.message
        assert isinstance(e, MeteogramError)

    def test_timeout_is_transient(self):
        e = FetchTimeout("slow")
        assert isinstance(e, TRANSIENT_ERRORS)
        assert e.status_code is None

    def test_status_code(self):
        assert NetworkFailure("HTTP 503", 503).status_code == 503

    def test_parse_error_not_transient(self):
        assert not isinstance(ParseError("bad"), TRANSIENT_ERRORS)
