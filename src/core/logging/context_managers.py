"""Context managers for structured logging."""

from typing import Dict, Optional

from core.logging.context import get_log_context, set_log_context


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(operation_id=42, api="ProjectsApi"):
            # All logs in this block will carry operation_id and api
            handler(42, reply)
    """

    def __init__(
        self,
        operation_id: Optional[int | str] = None,
        api: Optional[str] = None,
        trace_id: Optional[str] = None,
    ):
        self.new_context = {
            "operation_id": operation_id,
            "api": api,
            "trace_id": trace_id,
        }
        self.old_context: Dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        for key, value in self.new_context.items():
            if value is not None:
                set_log_context(**{key: value})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # Restore old context
        set_log_context(
            operation_id=self.old_context.get("operation_id", ""),
            api=self.old_context.get("api", ""),
            trace_id=self.old_context.get("trace_id", ""),
        )
        return False
