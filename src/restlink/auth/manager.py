"""Quasi-OAuth2 token manager with timed refresh and bounded retries."""

import asyncio
import json
import logging
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from urllib.parse import urlencode

from core.resilience.retry import TOKEN_RETRY, RetryConfig
from restlink.auth.models import AuthState, QuasiOAuth2Token
from restlink.events import EventHook
from restlink.transport import NetworkReply, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_PATH = "/oauth2/token"
DEFAULT_REFRESH_INTERVAL_SECONDS = 60 * 60

AUTH_SERVICE_NAME = "authentication service"

# Transport failures worth another attempt; anything else fails immediately
RETRIABLE_TRANSPORT_ERRORS = frozenset(
    {
        TransportError.CONNECTION_REFUSED,
        TransportError.REMOTE_HOST_CLOSED,
        TransportError.HOST_NOT_FOUND,
        TransportError.SSL_HANDSHAKE_FAILED,
        TransportError.TEMPORARY_NETWORK_FAILURE,
        TransportError.NETWORK_SESSION_FAILED,
        TransportError.PROXY_CONNECTION_REFUSED,
        TransportError.PROXY_CONNECTION_CLOSED,
        TransportError.UNKNOWN_NETWORK_ERROR,
        TransportError.UNKNOWN_PROXY_ERROR,
        TransportError.PROXY_NOT_FOUND,
    }
)

_REJECTED_CREDENTIALS_ERRORS = frozenset(
    {
        TransportError.AUTHENTICATION_REQUIRED,
        TransportError.CONTENT_ACCESS_DENIED,
    }
)

CANT_CONNECT_MESSAGE = f"Can't connect to {AUTH_SERVICE_NAME}.\nPlease try again."
WRONG_AUTHENTICATION_MESSAGE = (
    f"Wrong {AUTH_SERVICE_NAME} authentication.\nPlease check your authentication settings."
)
WRONG_ANSWER_MESSAGE = f"Wrong {AUTH_SERVICE_NAME} answer.\nPlease check your host settings."

# (path, body, headers) -> reply; the reply must already be started
TokenRequestSender = Callable[[str, bytes, Mapping[str, str]], NetworkReply]


class QuasiOAuth2TokenManager:
    """
    Obtains and refreshes a bearer token from a password-grant token endpoint.

    State machine::

        IDLE -> REQUESTING -> VALID -> (refresh timer) -> REQUESTING
                REQUESTING -> RETRY_WAIT -> REQUESTING   (retriable failure, budget left)
                REQUESTING -> FAILED                      (budget spent or non-retriable)

    Only one token request is ever in flight. Callers that need the token
    while it is being requested await the same request via
    :meth:`ensure_token`.

    Usage:
        manager = QuasiOAuth2TokenManager(client.send_token_request, "user", "secret")
        manager.authentication_error.connect(show_message)
        if await manager.ensure_token():
            headers["Authorization"] = f"Bearer {manager.access_token}"
    """

    def __init__(
        self,
        send_request: TokenRequestSender,
        username: str = "",
        password: str = "",
        token_path: str = DEFAULT_TOKEN_PATH,
        retry: RetryConfig = TOKEN_RETRY,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
    ):
        """
        Initialize token manager.

        Args:
            send_request: Issues the token POST and returns the started reply
            username: Resource owner username
            password: Resource owner password
            token_path: Token endpoint path on the configured host
            retry: Retry budget and spacing for retriable transport failures
            refresh_interval: Seconds between proactive refreshes (<= 0 disables)
        """
        self._send = send_request
        self.username = username
        self.password = password
        self.token_path = token_path
        self.retry = retry
        self.refresh_interval = float(refresh_interval)

        self._token: QuasiOAuth2Token | None = None
        self._state = AuthState.IDLE
        self._retries_left = retry.retries
        self._lock = threading.Lock()
        self._request_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None

        self.authentication_succeeded = EventHook("authentication_succeeded")
        self.authentication_error = EventHook("authentication_error")

        logger.debug(
            f"Initialized QuasiOAuth2TokenManager with {retry.retries} retries",
            extra={"retries_left": retry.retries},
        )

    @property
    def state(self) -> AuthState:
        with self._lock:
            return self._state

    @property
    def token(self) -> QuasiOAuth2Token | None:
        with self._lock:
            return self._token

    @property
    def access_token(self) -> str:
        with self._lock:
            return self._token.access_token if self._token else ""

    @property
    def retries_left(self) -> int:
        with self._lock:
            return self._retries_left

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    def has_valid_token(self) -> bool:
        with self._lock:
            return (
                self._state is AuthState.VALID
                and self._token is not None
                and not self._token.is_expired()
            )

    def set_credentials(self, username: str, password: str) -> None:
        self.username = username
        self.password = password

    def set_token(self, access_token: str, expires_at: datetime, token_type: str = "bearer") -> None:
        """Install a token obtained elsewhere."""
        with self._lock:
            self._token = QuasiOAuth2Token(access_token, token_type, expires_at)
            self._state = AuthState.VALID if access_token else AuthState.IDLE

    def authenticate(self) -> asyncio.Task:
        """
        Restart the refresh timer and request a token.

        If a request is already in flight it is reused instead of sending a
        second one. Must be called from a running event loop.
        """
        self._restart_refresh_timer()
        return self._ensure_request()

    async def ensure_token(self) -> bool:
        """
        Suspend until a token is VALID or acquisition FAILED.

        Returns:
            True if a valid token is available
        """
        if self.has_valid_token():
            return True

        task = self._request_task
        if task is None or task.done():
            task = self.authenticate()

        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # The shared request was stopped; the waiter itself was not cancelled
            if task.cancelled():
                return False
            raise
        return self.state is AuthState.VALID

    def cancel(self) -> list[asyncio.Task]:
        """Cancel the refresh timer and any in-flight token request without waiting."""
        tasks = [t for t in (self._refresh_task, self._request_task) if t and not t.done()]
        for task in tasks:
            task.cancel()
        self._refresh_task = None
        self._request_task = None
        with self._lock:
            if self._state in (AuthState.REQUESTING, AuthState.RETRY_WAIT):
                self._state = AuthState.IDLE
        return tasks

    async def stop(self) -> None:
        """Cancel the refresh timer and any in-flight token request, and wait for them."""
        tasks = self.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _set_state(self, state: AuthState) -> None:
        with self._lock:
            self._state = state

    def _ensure_request(self) -> asyncio.Task:
        if self._request_task is None or self._request_task.done():
            self._request_task = asyncio.get_running_loop().create_task(self._acquire())
        return self._request_task

    def _restart_refresh_timer(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
        if self.refresh_interval > 0:
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            logger.debug("Refreshing token", extra={"auth_state": self.state.value})
            self._ensure_request()

    def _request_body(self) -> bytes:
        return urlencode(
            {"grant_type": "password", "username": self.username, "password": self.password}
        ).encode("ascii")

    async def _acquire(self) -> None:
        attempt = 0
        with self._lock:
            self._retries_left = self.retry.retries

        while True:
            self._set_state(AuthState.REQUESTING)
            requested_at = datetime.now(UTC)
            reply = self._send(
                self.token_path,
                self._request_body(),
                {"Content-Type": "application/x-www-form-urlencoded"},
            )
            try:
                await reply.wait()
            except asyncio.CancelledError:
                reply.abort()
                raise

            if reply.error != TransportError.NO_ERROR:
                retriable = reply.error in RETRIABLE_TRANSPORT_ERRORS
                if self.retry.should_retry(attempt, retriable):
                    delay = self.retry.get_delay(attempt)
                    attempt += 1
                    with self._lock:
                        self._retries_left -= 1
                        self._state = AuthState.RETRY_WAIT
                        retries_left = self._retries_left
                    logger.warning(
                        "Token request failed, will retry",
                        extra={
                            "transport_error": int(reply.error),
                            "attempt": attempt,
                            "retries_left": retries_left,
                            "delay_seconds": delay,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

                if reply.error in _REJECTED_CREDENTIALS_ERRORS:
                    self._fail(WRONG_AUTHENTICATION_MESSAGE, reply)
                else:
                    self._fail(CANT_CONNECT_MESSAGE, reply)
                return

            try:
                payload = json.loads(reply.read())
            except ValueError:
                payload = None
            if not isinstance(payload, dict):
                self._fail(WRONG_ANSWER_MESSAGE, reply)
                return

            token = QuasiOAuth2Token.from_response(payload, requested_at)
            if not token.access_token:
                self._fail(WRONG_ANSWER_MESSAGE, reply)
                return

            with self._lock:
                self._token = token
                self._state = AuthState.VALID
                self._retries_left = self.retry.retries
            logger.info(
                "Token acquired",
                extra={
                    "auth_state": AuthState.VALID.value,
                    "expires_in": int(token.remaining_lifetime.total_seconds()),
                },
            )
            self.authentication_succeeded.emit()
            return

    def _fail(self, message: str, reply: NetworkReply) -> None:
        self._set_state(AuthState.FAILED)
        logger.warning(
            "Token acquisition failed",
            extra={
                "auth_state": AuthState.FAILED.value,
                "transport_error": int(reply.error),
                "http_status": reply.status,
                "error_message": reply.error_string or message,
            },
        )
        self.authentication_error.emit(message)


__all__ = [
    "QuasiOAuth2TokenManager",
    "TokenRequestSender",
    "RETRIABLE_TRANSPORT_ERRORS",
    "DEFAULT_TOKEN_PATH",
    "DEFAULT_REFRESH_INTERVAL_SECONDS",
    "CANT_CONNECT_MESSAGE",
    "WRONG_AUTHENTICATION_MESSAGE",
    "WRONG_ANSWER_MESSAGE",
]
