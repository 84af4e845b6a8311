"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_operation_id: ContextVar[str] = ContextVar("operation_id", default="")
_api: ContextVar[str] = ContextVar("api", default="")
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def set_log_context(
    operation_id: Optional[int | str] = None,
    api: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    if operation_id is not None:
        _operation_id.set(str(operation_id) if operation_id else "")
    if api is not None:
        _api.set(api)
    if trace_id is not None:
        _trace_id.set(trace_id)


def get_log_context() -> Dict[str, str]:
    return {
        "operation_id": _operation_id.get(),
        "api": _api.get(),
        "trace_id": _trace_id.get(),
    }


def clear_log_context() -> None:
    _operation_id.set("")
    _api.set("")
    _trace_id.set("")
