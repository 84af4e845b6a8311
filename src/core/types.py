"""
Core types shared across modules.

This module provides the error classification enum used by the exception
hierarchy and by the REST error records, so both sides agree on how a
failure should be handled.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed on retry
                   (e.g., host unreachable, timeouts, 5xx responses)
        AUTH: Authentication failures requiring credential refresh
              (e.g., 401 responses, failed token acquisition)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., 404, malformed payloads, configuration issues)
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"
