"""
Resilience patterns module.

Components:
    - RetryConfig: Retry budget with fixed or exponential spacing
    - TOKEN_RETRY: Budget used for token acquisition
"""

from .retry import (
    TOKEN_RETRY,
    RetryConfig,
)

__all__ = [
    "RetryConfig",
    "TOKEN_RETRY",
]
