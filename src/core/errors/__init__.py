"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- RestLinkError hierarchy for typed exceptions
- HTTP status classification
"""

from core.errors.exceptions import (
    ConfigurationError,
    # Enums
    ErrorCategory,
    # Base classes
    RestLinkError,
    # Classification utilities
    classify_http_status,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "RestLinkError",
    "ConfigurationError",
    # Utilities
    "classify_http_status",
]
