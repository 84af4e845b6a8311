"""
Error classification for finished, failed and TLS-troubled replies.

A reply can surface a transport-level problem, an HTTP-status problem, both
or neither. The functions here decide which of the two channels applies to a
given transport code and build the error record for it. They never touch the
pending-operation table; the registry does that around them.
"""

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from restlink.errors import (
    NETWORK_ERROR_OFFSET,
    NETWORK_MODULE_CODE,
    NETWORK_SSL_ERROR_OFFSET,
    Level,
    NetworkErrorCode,
    RestApiError,
)
from restlink.transport import NetworkReply, SslProblem, TransportError

logger = logging.getLogger(__name__)

# 207 and above are reported as server errors
ALLOWED_HTTP_STATUSES = frozenset(range(200, 207))

_HOST_NOT_FOUND_ERRORS = frozenset({TransportError.HOST_NOT_FOUND})
_HOST_UNAVAILABLE_ERRORS = frozenset(
    {
        TransportError.CONNECTION_REFUSED,
        TransportError.REMOTE_HOST_CLOSED,
        TransportError.TIMEOUT,
        TransportError.OPERATION_CANCELED,
    }
)


def is_status_check_applicable(error: int) -> bool:
    """True when the HTTP status decides the outcome (no error or benign band)."""
    return error == TransportError.NO_ERROR or (error >= 100 and error % 100 != 99)


def is_transport_error_reportable(error: int) -> bool:
    """True when the transport code itself must be reported."""
    return error != TransportError.NO_ERROR and (error < 200 or error % 100 == 99)


def extract_status_message(reply: NetworkReply) -> str:
    """
    Message for a non-success status: plain text body, JSON ``message``, or reason.

    The reason phrase is used whenever the body yields no message.
    """
    message = ""
    content_type = reply.content_type.lower()
    if content_type.startswith("text/plain"):
        message = reply.read().decode("utf-8", errors="replace").strip()
    elif content_type.startswith("application/json"):
        try:
            payload = json.loads(reply.read())
        except (ValueError, UnicodeDecodeError):
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("message"), str):
            message = payload["message"]
    return message or reply.reason.strip()


def classify_finished_reply(
    reply: NetworkReply, force_user_friendly: bool = False
) -> RestApiError | None:
    """
    Status-based check for a reply that reached the finished event.

    Returns:
        ServerError record, or None when the status is in the allow-list
        or the transport code belongs to the transport-error channel.
    """
    if not is_status_check_applicable(reply.error):
        return None
    if reply.status in ALLOWED_HTTP_STATUSES:
        return None
    return RestApiError(
        level=Level.SERVER_ERROR,
        code=reply.status or 0,
        module_code=NETWORK_MODULE_CODE,
        error_code=NetworkErrorCode.SERVER_ERROR,
        message=extract_status_message(reply),
        user_friendly=force_user_friendly,
    )


def classify_transport_error(
    reply: NetworkReply, force_user_friendly: bool = False
) -> RestApiError | None:
    """
    Transport-error check for a reply that reported a transport code.

    Host-unreachable and timeout-class codes are rewritten into a
    user-facing "try again later" message with SERVICE_UNAVAILABLE.
    """
    error = reply.error
    if not is_transport_error_reportable(error):
        return None

    code = reply.status if reply.status else NETWORK_ERROR_OFFSET + int(error)

    if error in _HOST_NOT_FOUND_ERRORS:
        return RestApiError(
            level=Level.CLIENT_ERROR,
            code=code,
            module_code=NETWORK_MODULE_CODE,
            error_code=NetworkErrorCode.SERVICE_UNAVAILABLE,
            message=f"Host {reply.host} not found. Try again later",
            user_friendly=True,
        )
    if error in _HOST_UNAVAILABLE_ERRORS:
        return RestApiError(
            level=Level.CLIENT_ERROR,
            code=code,
            module_code=NETWORK_MODULE_CODE,
            error_code=NetworkErrorCode.SERVICE_UNAVAILABLE,
            message=f"Host {reply.host} is unavailable. Try again later",
            user_friendly=True,
        )
    return RestApiError(
        level=Level.CLIENT_ERROR,
        code=code,
        module_code=NETWORK_MODULE_CODE,
        error_code=NetworkErrorCode.SERVER_ERROR,
        message=reply.error_string,
        user_friendly=force_user_friendly,
    )


def classify_ssl_problems(
    reply: NetworkReply,
    problems: Sequence[SslProblem],
    force_user_friendly: bool = False,
) -> RestApiError | None:
    """Record for the first genuine TLS problem; later ones are only logged."""
    record = None
    for problem in problems:
        if not problem.is_error:
            continue
        if record is None:
            record = RestApiError(
                level=Level.SSL_ERROR,
                code=NETWORK_SSL_ERROR_OFFSET + problem.code,
                module_code=NETWORK_MODULE_CODE,
                error_code=NetworkErrorCode.SSL_ERROR,
                message=problem.message,
                user_friendly=force_user_friendly,
            )
        else:
            logger.warning(
                "Additional TLS problem not reported",
                extra={
                    "http_url": str(reply.url),
                    "ssl_error_code": problem.code,
                    "error_message": problem.message,
                },
            )
    return record


def server_error_message(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def classify_server_error_attributes(
    payload: Mapping[str, Any], attributes: Sequence[str]
) -> RestApiError | None:
    """First configured server-error attribute present in ``payload`` wins."""
    for attribute in attributes:
        if attribute in payload:
            return RestApiError(
                level=Level.JSON_SERVER_ERROR,
                code=0,
                module_code=NETWORK_MODULE_CODE,
                error_code=NetworkErrorCode.INVALID_REPLY,
                message=server_error_message(payload[attribute]),
            )
    return None


def canceled_error() -> RestApiError:
    return RestApiError(
        level=Level.CLIENT_ERROR,
        code=NETWORK_ERROR_OFFSET + int(TransportError.OPERATION_CANCELED),
        module_code=NETWORK_MODULE_CODE,
        error_code=NetworkErrorCode.SERVICE_UNAVAILABLE,
        message="Request canceled",
        user_friendly=False,
    )


__all__ = [
    "ALLOWED_HTTP_STATUSES",
    "is_status_check_applicable",
    "is_transport_error_reportable",
    "extract_status_message",
    "classify_finished_reply",
    "classify_transport_error",
    "classify_ssl_problems",
    "classify_server_error_attributes",
    "server_error_message",
    "canceled_error",
]
