"""
Transport handles and transport error codes.

A :class:`NetworkReply` is the in-flight handle for one HTTP exchange. It
runs as an asyncio task on the loop that issued it and, when the task ends,
fires its events in a fixed order: TLS problems, transport error, finished.
"""

import asyncio
import logging
import socket
import ssl
import time
from collections.abc import Coroutine, Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from restlink.events import EventHook

logger = logging.getLogger(__name__)


class TransportError(IntEnum):
    """Transport-level error codes.

    Values below 100 are connection problems, 1xx proxy problems, 2xx content
    problems, 3xx protocol problems and 4xx server problems. Codes ending in
    99 are the "unknown" member of their class.
    """

    NO_ERROR = 0

    CONNECTION_REFUSED = 1
    REMOTE_HOST_CLOSED = 2
    HOST_NOT_FOUND = 3
    TIMEOUT = 4
    OPERATION_CANCELED = 5
    SSL_HANDSHAKE_FAILED = 6
    TEMPORARY_NETWORK_FAILURE = 7
    NETWORK_SESSION_FAILED = 8
    BACKGROUND_REQUEST_NOT_ALLOWED = 9
    TOO_MANY_REDIRECTS = 10
    INSECURE_REDIRECT = 11
    UNKNOWN_NETWORK_ERROR = 99

    PROXY_CONNECTION_REFUSED = 101
    PROXY_CONNECTION_CLOSED = 102
    PROXY_NOT_FOUND = 103
    PROXY_TIMEOUT = 104
    PROXY_AUTHENTICATION_REQUIRED = 105
    UNKNOWN_PROXY_ERROR = 199

    CONTENT_ACCESS_DENIED = 201
    CONTENT_OPERATION_NOT_PERMITTED = 202
    CONTENT_NOT_FOUND = 203
    AUTHENTICATION_REQUIRED = 204
    CONTENT_RE_SEND = 205
    CONTENT_CONFLICT = 206
    CONTENT_GONE = 207
    UNKNOWN_CONTENT_ERROR = 299

    PROTOCOL_UNKNOWN = 301
    PROTOCOL_INVALID_OPERATION = 302
    PROTOCOL_FAILURE = 399

    INTERNAL_SERVER_ERROR = 401
    OPERATION_NOT_IMPLEMENTED = 402
    SERVICE_UNAVAILABLE = 403
    UNKNOWN_SERVER_ERROR = 499


# Statuses with a dedicated transport code; other 4xx/5xx fall back to the
# UNKNOWN_CONTENT_ERROR / UNKNOWN_SERVER_ERROR members.
_STATUS_TRANSPORT_ERRORS = {
    401: TransportError.AUTHENTICATION_REQUIRED,
    403: TransportError.CONTENT_ACCESS_DENIED,
    404: TransportError.CONTENT_NOT_FOUND,
    405: TransportError.CONTENT_OPERATION_NOT_PERMITTED,
    407: TransportError.PROXY_AUTHENTICATION_REQUIRED,
    409: TransportError.CONTENT_CONFLICT,
    410: TransportError.CONTENT_GONE,
    418: TransportError.PROTOCOL_INVALID_OPERATION,
    500: TransportError.INTERNAL_SERVER_ERROR,
    501: TransportError.OPERATION_NOT_IMPLEMENTED,
    503: TransportError.SERVICE_UNAVAILABLE,
}

# OpenSSL has no code for "TLS failed for a reason we could not read"
SSL_UNSPECIFIED_ERROR = -1


def transport_error_for_status(status: int | None) -> TransportError:
    """Transport code implied by an HTTP status (NO_ERROR below 400)."""
    if status is None or status < 400:
        return TransportError.NO_ERROR
    mapped = _STATUS_TRANSPORT_ERRORS.get(status)
    if mapped is not None:
        return mapped
    if status < 500:
        return TransportError.UNKNOWN_CONTENT_ERROR
    return TransportError.UNKNOWN_SERVER_ERROR


@dataclass(frozen=True)
class SslProblem:
    """One TLS problem reported during the handshake."""

    code: int
    message: str

    @property
    def is_error(self) -> bool:
        return self.code != 0


def _ssl_problem_from(exc: BaseException) -> SslProblem:
    cert_error = getattr(exc, "certificate_error", exc)
    verify_code = getattr(cert_error, "verify_code", None)
    if isinstance(verify_code, int) and verify_code:
        message = getattr(cert_error, "verify_message", None) or str(cert_error)
        return SslProblem(code=verify_code, message=str(message))
    return SslProblem(code=SSL_UNSPECIFIED_ERROR, message=str(exc) or "TLS handshake failed")


def transport_error_for_exception(
    exc: BaseException,
) -> tuple[TransportError, str, list[SslProblem]]:
    """
    Map an exception raised by the HTTP client to a transport code.

    Returns:
        (code, error string, TLS problems)
    """
    message = str(exc) or type(exc).__name__

    # aiohttp.ServerTimeoutError is also an asyncio.TimeoutError
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return TransportError.TIMEOUT, "Operation timed out", []

    if isinstance(exc, (aiohttp.ClientSSLError, ssl.SSLError)):
        return TransportError.SSL_HANDSHAKE_FAILED, message, [_ssl_problem_from(exc)]

    if isinstance(exc, aiohttp.ClientProxyConnectionError):
        return TransportError.PROXY_CONNECTION_REFUSED, message, []

    if isinstance(exc, aiohttp.ClientConnectorError):
        os_error = getattr(exc, "os_error", None)
        if isinstance(os_error, socket.gaierror):
            return TransportError.HOST_NOT_FOUND, message, []
        if isinstance(os_error, ConnectionRefusedError):
            return TransportError.CONNECTION_REFUSED, message, []
        if isinstance(os_error, (asyncio.TimeoutError, TimeoutError)):
            return TransportError.TIMEOUT, message, []
        return TransportError.UNKNOWN_NETWORK_ERROR, message, []

    if isinstance(exc, aiohttp.ServerDisconnectedError):
        return TransportError.REMOTE_HOST_CLOSED, message, []

    if isinstance(exc, aiohttp.TooManyRedirects):
        return TransportError.TOO_MANY_REDIRECTS, message, []

    if isinstance(exc, (aiohttp.InvalidURL, aiohttp.ClientPayloadError)):
        return TransportError.PROTOCOL_FAILURE, message, []

    if isinstance(exc, ConnectionResetError):
        return TransportError.REMOTE_HOST_CLOSED, message, []

    return TransportError.UNKNOWN_NETWORK_ERROR, message, []


class NetworkReply:
    """
    Handle for one in-flight HTTP exchange.

    The transport fills the reply through :meth:`set_response` and
    :meth:`set_error` while its task runs. ``abort()`` may be called from any
    thread; the reply then finishes with OPERATION_CANCELED.
    """

    def __init__(self, verb: str, url: URL):
        self.verb = verb.upper()
        self.url = url
        self.status: int | None = None
        self.reason = ""
        self.headers: CIMultiDictProxy[str] = CIMultiDictProxy(CIMultiDict())
        self.request_headers: dict[str, str] = {}
        self.error = TransportError.NO_ERROR
        self.error_string = ""
        self.ssl_problems: list[SslProblem] = []

        self.ssl_errors = EventHook("ssl_errors")
        self.error_occurred = EventHook("error")
        self.finished = EventHook("finished")

        self._body = b""
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._aborted = False
        self._started_at = 0.0

    def __repr__(self) -> str:
        return f"<NetworkReply {self.verb} {self.url} status={self.status} error={self.error.name}>"

    @property
    def host(self) -> str:
        return self.url.host or ""

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_finished(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def was_aborted(self) -> bool:
        return self._aborted

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")

    def read(self) -> bytes:
        return self._body

    def start(self, exchange: Coroutine[Any, Any, None]) -> None:
        """Run ``exchange`` as this reply's task on the running loop."""
        self._loop = asyncio.get_running_loop()
        self._started_at = time.perf_counter()
        self._task = self._loop.create_task(exchange)
        self._task.add_done_callback(self._on_task_done)

    def set_response(
        self,
        status: int,
        reason: str = "",
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
    ) -> None:
        self.status = status
        self.reason = reason or ""
        self.headers = CIMultiDictProxy(CIMultiDict(headers or {}))
        self._body = body or b""
        error = transport_error_for_status(status)
        if error != TransportError.NO_ERROR:
            self.set_error(
                error,
                f"Error transferring {self.url} - server replied: {self.reason}",
            )

    def set_error(
        self,
        code: TransportError,
        message: str,
        ssl_problems: list[SslProblem] | None = None,
    ) -> None:
        self.error = TransportError(code)
        self.error_string = message
        if ssl_problems:
            self.ssl_problems = list(ssl_problems)

    def abort(self) -> None:
        """Cancel the exchange. No-op once it has finished."""
        if self._task is None or self._task.done() or self._aborted:
            return
        self._aborted = True
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._task.cancel()
        else:
            self._loop.call_soon_threadsafe(self._task.cancel)

    async def wait(self) -> None:
        """Suspend until the reply has finished and its events have fired."""
        if self._task is None:
            return
        await asyncio.wait({self._task})

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self.set_error(TransportError.OPERATION_CANCELED, "Operation canceled")
        else:
            exc = task.exception()
            if exc is not None:
                code, message, problems = transport_error_for_exception(exc)
                logger.error(
                    "Transport raised while handling reply",
                    exc_info=exc,
                    extra={"http_method": self.verb, "http_url": str(self.url)},
                )
                self.set_error(code, message, problems)

        logger.debug(
            "Reply done",
            extra={
                "http_method": self.verb,
                "http_url": str(self.url),
                "http_status": self.status,
                "transport_error": int(self.error),
                "duration_ms": round((time.perf_counter() - self._started_at) * 1000, 2),
            },
        )

        if self.ssl_problems:
            self.ssl_errors.emit(self, list(self.ssl_problems))
        if self.error != TransportError.NO_ERROR:
            self.error_occurred.emit(self, self.error)
        self.finished.emit(self)


__all__ = [
    "TransportError",
    "SslProblem",
    "SSL_UNSPECIFIED_ERROR",
    "NetworkReply",
    "transport_error_for_status",
    "transport_error_for_exception",
]
