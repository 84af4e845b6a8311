"""
Core library: ambient support for the REST orchestration package.

Modules:
    errors      - Exception hierarchy tagged with ErrorCategory
    logging     - Structured JSON logging with operation context
    resilience  - Retry budget and backoff configuration
    utils       - JSON serialization helpers for log output
"""

from .types import ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
]
