"""
Authentication support for REST clients.

Provides the quasi-OAuth2 token manager (password grant against a
``/oauth2/token`` endpoint, timed refresh, bounded retries) and header
builders for the Basic and WSSE modes.
"""

from restlink.auth.manager import (
    DEFAULT_REFRESH_INTERVAL_SECONDS,
    DEFAULT_TOKEN_PATH,
    RETRIABLE_TRANSPORT_ERRORS,
    QuasiOAuth2TokenManager,
)
from restlink.auth.models import AuthState, QuasiOAuth2Token
from restlink.auth.wsse import basic_credentials, wsse_token

__all__ = [
    "QuasiOAuth2TokenManager",
    "QuasiOAuth2Token",
    "AuthState",
    "RETRIABLE_TRANSPORT_ERRORS",
    "DEFAULT_TOKEN_PATH",
    "DEFAULT_REFRESH_INTERVAL_SECONDS",
    "basic_credentials",
    "wsse_token",
]
