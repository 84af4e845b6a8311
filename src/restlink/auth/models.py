"""Quasi-OAuth2 data models."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any


class AuthState(Enum):
    """Token manager states."""

    IDLE = "idle"
    REQUESTING = "requesting"
    RETRY_WAIT = "retry_wait"
    VALID = "valid"
    FAILED = "failed"


@dataclass
class QuasiOAuth2Token:
    """
    Bearer token with expiration tracking.

    Attributes:
        access_token: The access token string
        token_type: Token type (typically "bearer")
        expires_at: UTC timestamp when token expires
    """

    access_token: str
    token_type: str
    expires_at: datetime

    @classmethod
    def from_response(
        cls, response: dict[str, Any], requested_at: datetime | None = None
    ) -> "QuasiOAuth2Token":
        """
        Create token from a token endpoint answer.

        A missing or non-numeric ``expires_in`` yields a token that is
        already expired, so the next request triggers a refresh.

        Args:
            response: Decoded token endpoint answer
            requested_at: When the request was sent (default: now)

        Returns:
            QuasiOAuth2Token instance
        """
        requested_at = requested_at or datetime.now(UTC)
        expires_in = response.get("expires_in", 0)
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            expires_in = 0
        access_token = response.get("access_token", "")
        return cls(
            access_token=access_token if isinstance(access_token, str) else "",
            token_type=str(response.get("token_type", "bearer")),
            expires_at=requested_at + timedelta(seconds=int(expires_in)),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    @property
    def remaining_lifetime(self) -> timedelta:
        """Get remaining time before token expires."""
        return self.expires_at - datetime.now(UTC)


__all__ = ["AuthState", "QuasiOAuth2Token"]
