"""Tests for QuasiOAuth2Token."""

from datetime import UTC, datetime, timedelta

import pytest

from restlink.auth.models import QuasiOAuth2Token


REQUESTED_AT = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class TestQuasiOAuth2Token:

    def test_from_response(self):
        token = QuasiOAuth2Token.from_response(
            {"access_token": "abc", "token_type": "Bearer", "expires_in": 3600}, REQUESTED_AT
        )

        assert token.access_token == "abc"
        assert token.token_type == "Bearer"
        assert token.expires_at == REQUESTED_AT + timedelta(hours=1)

    @pytest.mark.parametrize("expires_in", [None, "3600", True, [1]])
    def test_non_numeric_expiry_is_already_expired(self, expires_in):
        token = QuasiOAuth2Token.from_response(
            {"access_token": "abc", "expires_in": expires_in}, REQUESTED_AT
        )
        assert token.expires_at == REQUESTED_AT
        assert token.is_expired(REQUESTED_AT)

    def test_missing_fields(self):
        token = QuasiOAuth2Token.from_response({"access_token": 42}, REQUESTED_AT)
        assert token.access_token == ""
        assert token.token_type == "bearer"

    def test_is_expired(self):
        token = QuasiOAuth2Token("abc", "bearer", REQUESTED_AT + timedelta(seconds=10))
        assert not token.is_expired(REQUESTED_AT)
        assert token.is_expired(REQUESTED_AT + timedelta(seconds=10))

    def test_remaining_lifetime(self):
        token = QuasiOAuth2Token("abc", "bearer", datetime.now(UTC) + timedelta(minutes=5))
        assert timedelta(minutes=4) < token.remaining_lifetime <= timedelta(minutes=5)
