"""
REST transport adapter built on aiohttp.

RestClient builds request headers (content type, cookies, custom headers,
diagnostic headers, authentication), issues requests as NetworkReply
handles and applies a per-reply timeout. It knows nothing about operation
ids or error records; RestApi layers those on top.
"""

import asyncio
import ipaddress
import json
import logging
import socket
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

import aiohttp
from yarl import URL

from core.resilience.retry import TOKEN_RETRY, RetryConfig
from restlink.auth.manager import (
    DEFAULT_REFRESH_INTERVAL_SECONDS,
    DEFAULT_TOKEN_PATH,
    QuasiOAuth2TokenManager,
)
from restlink.auth.wsse import basic_credentials, wsse_token
from restlink.events import EventHook
from restlink.transport import NetworkReply, SslProblem, transport_error_for_exception
from restlink.version import __version__

if TYPE_CHECKING:
    from config.config import RestClientConfig

logger = logging.getLogger(__name__)

DEFAULT_REPLY_TIMEOUT_MS = 5 * 60 * 1000
DIAGNOSTIC_HEADER_PREFIX = "Restlink"

Query = Union[str, Mapping[str, Any], Sequence[tuple[str, Any]], None]


class RestAuthType(Enum):
    """How requests are authenticated."""

    NO_AUTH = "no_auth"
    BASIC = "basic"
    WSSE = "wsse"
    BEARER_TOKEN = "bearer_token"
    QUASI_OAUTH2 = "quasi_oauth2"


def parse_host(value: str) -> tuple[str, str]:
    """
    Split ``host[/postfix]`` into host and path postfix.

    >>> parse_host("api.example.com/v2/")
    ('api.example.com', '/v2')
    """
    value = value.strip()
    host, sep, postfix = value.partition("/")
    if not sep:
        return host, ""
    postfix = postfix.strip("/")
    return host, f"/{postfix}" if postfix else ""


def content_type_for(body: bytes, vendor: str = "") -> str:
    """Content type implied by the body and the API vendor."""
    if not body:
        return f"application/vnd.{vendor}" if vendor else "text/plain"
    # Only documents (object or array) count as JSON bodies
    try:
        document = json.loads(body)
    except ValueError:
        document = None
    if isinstance(document, (dict, list)):
        return f"application/vnd.{vendor}+json" if vendor else "application/json"
    if body.lstrip().startswith(b"<?xml"):
        return f"application/vnd.{vendor}+xml" if vendor else "text/xml"
    return f"application/vnd.{vendor}+x-www-form-urlencoded" if vendor else "application/x-www-form-urlencoded"


def local_ipv4_addresses() -> list[str]:
    """Non-loopback IPv4 addresses of this host, in resolution order."""
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    except OSError:
        return []
    addresses: list[str] = []
    for *_, sockaddr in infos:
        address = sockaddr[0]
        if ipaddress.ip_address(address).is_loopback or address in addresses:
            continue
        addresses.append(address)
    return addresses


class RestClient:
    """
    Issues REST requests against one host.

    Events:
        finished(reply): every reply, after its own events fired
        ssl_errors(reply, problems): TLS problems, unless ignore_ssl_errors

    Usage:
        async with RestClient("api.example.com/v2", auth_type=RestAuthType.BASIC,
                              username="user", password="secret") as client:
            reply = client.get("/projects", query={"page": 1})
            await reply.wait()
    """

    def __init__(
        self,
        host: str = "",
        port: int | None = None,
        scheme: str = "https",
        auth_type: RestAuthType = RestAuthType.NO_AUTH,
        username: str = "",
        password: str = "",
        client_name: str = "",
        token: str = "",
        timeout_ms: int = DEFAULT_REPLY_TIMEOUT_MS,
        follow_redirects: bool = True,
        ignore_ssl_errors: bool = False,
        application_name: str = "restlink",
        application_version: str = "0.0.0",
        token_path: str = DEFAULT_TOKEN_PATH,
        token_retry: RetryConfig = TOKEN_RETRY,
        token_refresh_interval: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
    ):
        self._host, self._postfix = parse_host(host)
        self.port = port
        self.scheme = scheme
        self._auth_type = RestAuthType(auth_type)
        self._username = username
        self._password = password
        self.client_name = client_name
        self.token = token
        self.timeout_ms = timeout_ms
        self.follow_redirects = follow_redirects
        self.ignore_ssl_errors = ignore_ssl_errors
        self.application_name = application_name
        self.application_version = application_version

        self._custom_headers: dict[str, str] = {}
        self._cookies: dict[str, str] = {}
        self._ip_addresses: list[str] | None = None
        self._timers: dict[NetworkReply, asyncio.TimerHandle] = {}
        self._session: aiohttp.ClientSession | None = None
        self._closed = False

        self.finished = EventHook("finished")
        self.ssl_errors = EventHook("ssl_errors")

        self.token_manager = QuasiOAuth2TokenManager(
            self.send_token_request,
            username=username,
            password=password,
            token_path=token_path,
            retry=token_retry,
            refresh_interval=token_refresh_interval,
        )

    @classmethod
    def from_config(cls, config: "RestClientConfig") -> "RestClient":
        client = cls(
            host=config.host,
            port=config.port,
            scheme=config.scheme,
            auth_type=RestAuthType(config.auth_type),
            username=config.username,
            password=config.password,
            client_name=config.client_name,
            token=config.token,
            timeout_ms=config.timeout_ms,
            follow_redirects=config.follow_redirects,
            ignore_ssl_errors=config.ignore_ssl_errors,
            application_name=config.application_name,
            application_version=config.application_version,
            token_path=config.token_path,
            token_retry=RetryConfig.fixed(
                config.token_retry_attempts, config.token_retry_interval_seconds
            ),
            token_refresh_interval=config.token_refresh_interval_seconds,
        )
        for name, value in config.custom_headers.items():
            client.set_custom_header(name, value)
        return client

    async def __aenter__(self) -> "RestClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def host(self) -> str:
        return self._host

    @host.setter
    def host(self, value: str) -> None:
        self._host, self._postfix = parse_host(value)

    @property
    def postfix(self) -> str:
        return self._postfix

    @postfix.setter
    def postfix(self, value: str) -> None:
        value = value.strip("/")
        self._postfix = f"/{value}" if value else ""

    @property
    def auth_type(self) -> RestAuthType:
        return self._auth_type

    @auth_type.setter
    def auth_type(self, value: RestAuthType) -> None:
        value = RestAuthType(value)
        if value is self._auth_type:
            return
        if self._auth_type is RestAuthType.QUASI_OAUTH2:
            self.token_manager.cancel()
        self._auth_type = value

    @property
    def username(self) -> str:
        return self._username

    @username.setter
    def username(self, value: str) -> None:
        self._username = value
        self.token_manager.set_credentials(value, self._password)

    @property
    def password(self) -> str:
        return self._password

    @password.setter
    def password(self, value: str) -> None:
        self._password = value
        self.token_manager.set_credentials(self._username, value)

    def is_logged_out(self) -> bool:
        """True when the auth mode needs credentials that are not configured."""
        if self._auth_type is RestAuthType.QUASI_OAUTH2:
            return not (self.token_manager.has_credentials or self.token_manager.access_token)
        if self._auth_type in (RestAuthType.BASIC, RestAuthType.WSSE):
            return not self._username
        if self._auth_type is RestAuthType.BEARER_TOKEN:
            return not self.token
        return False

    def set_custom_header(self, name: str, value: str) -> None:
        self._custom_headers[name] = value

    def custom_header(self, name: str) -> str:
        return self._custom_headers.get(name, "")

    def contains_custom_header(self, name: str) -> bool:
        return name in self._custom_headers

    def unset_custom_header(self, name: str) -> None:
        self._custom_headers.pop(name, None)

    def set_cookie(self, name: str, value: str) -> None:
        self._cookies[name] = value

    def cookie(self, name: str) -> str:
        return self._cookies.get(name, "")

    def contains_cookie(self, name: str) -> bool:
        return name in self._cookies

    def unset_cookie(self, name: str) -> None:
        self._cookies.pop(name, None)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def build_url(self, path: str, query: Query = None, with_postfix: bool = True) -> URL:
        full_path = (self._postfix if with_postfix else "") + path
        if not full_path.startswith("/"):
            full_path = "/" + full_path
        kwargs: dict[str, Any] = {}
        if isinstance(query, str):
            if query:
                kwargs["query_string"] = query.lstrip("?")
        elif query:
            kwargs["query"] = query
        return URL.build(
            scheme=self.scheme, host=self._host, port=self.port, path=full_path, **kwargs
        )

    def get(self, path: str, query: Query = None, vendor: str = "") -> NetworkReply:
        return self._issue("GET", path, query, b"", vendor)

    def post(self, path: str, query: Query = None, body: bytes = b"", vendor: str = "") -> NetworkReply:
        return self._issue("POST", path, query, body, vendor)

    def post_multipart(
        self, path: str, multipart: aiohttp.MultipartWriter, query: Query = None
    ) -> NetworkReply:
        return self._issue("POST", path, query, b"", "", multipart)

    def put(self, path: str, query: Query = None, body: bytes = b"", vendor: str = "") -> NetworkReply:
        return self._issue("PUT", path, query, body, vendor)

    def patch(self, path: str, query: Query = None, body: bytes = b"", vendor: str = "") -> NetworkReply:
        return self._issue("PATCH", path, query, body, vendor)

    def delete(self, path: str, query: Query = None, vendor: str = "") -> NetworkReply:
        return self._issue("DELETE", path, query, b"", vendor)

    def send_token_request(self, path: str, body: bytes, headers: Mapping[str, str]) -> NetworkReply:
        """POST to ``path`` on the bare host with only the given headers."""
        reply = NetworkReply("POST", self.build_url(path, with_postfix=False))
        reply.request_headers = dict(headers)
        reply.start(self._send(reply, reply.request_headers, body))
        self._handle_reply(reply)
        return reply

    def _issue(
        self,
        verb: str,
        path: str,
        query: Query,
        body: bytes,
        vendor: str,
        multipart: aiohttp.MultipartWriter | None = None,
    ) -> NetworkReply:
        reply = NetworkReply(verb, self.build_url(path, query))
        reply.start(self._perform(reply, body, vendor, multipart))
        self._handle_reply(reply)
        logger.debug(
            "Request issued",
            extra={"http_method": verb, "http_url": str(reply.url), "timeout_ms": self.timeout_ms},
        )
        return reply

    async def _perform(
        self,
        reply: NetworkReply,
        body: bytes,
        vendor: str,
        multipart: aiohttp.MultipartWriter | None,
    ) -> None:
        headers = await self.create_request_headers(body, vendor, multipart)
        reply.request_headers = headers
        await self._send(reply, headers, multipart if multipart is not None else body)

    async def _send(self, reply: NetworkReply, headers: Mapping[str, str], data: Any) -> None:
        """Run the HTTP exchange and record its outcome on ``reply``."""
        session = await self._ensure_session()
        kwargs: dict[str, Any] = {}
        if self.ignore_ssl_errors:
            kwargs["ssl"] = False
        try:
            async with session.request(
                reply.verb,
                reply.url,
                headers=dict(headers),
                data=data or None,
                allow_redirects=self.follow_redirects,
                **kwargs,
            ) as response:
                body = await response.read()
                reply.set_response(response.status, response.reason or "", response.headers, body)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            code, message, problems = transport_error_for_exception(e)
            reply.set_error(code, message, problems)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RuntimeError("RestClient is closed, cannot create new session")
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None),
            )
        return self._session

    async def close(self) -> None:
        self._closed = True
        await self.token_manager.stop()
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        if self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None

    # ------------------------------------------------------------------
    # Headers
    # ------------------------------------------------------------------

    def diagnostic_headers(self) -> dict[str, str]:
        app = self.application_name
        headers = {
            f"{DIAGNOSTIC_HEADER_PREFIX}-Application": app,
            f"{DIAGNOSTIC_HEADER_PREFIX}-{app}-Version": self.application_version,
            f"{DIAGNOSTIC_HEADER_PREFIX}-{app}-Framework-Version": __version__,
        }
        if self._ip_addresses is None:
            self._ip_addresses = local_ipv4_addresses()
        if self._ip_addresses:
            headers[f"{DIAGNOSTIC_HEADER_PREFIX}-IP-Addresses"] = "; ".join(self._ip_addresses)
        return headers

    async def create_request_headers(
        self,
        body: bytes = b"",
        vendor: str = "",
        multipart: aiohttp.MultipartWriter | None = None,
    ) -> dict[str, str]:
        if multipart is not None:
            content_type = multipart.content_type
        else:
            content_type = content_type_for(body, vendor)
        headers = {"Content-Type": content_type}
        headers.update(self._custom_headers)
        if self._cookies:
            headers["Cookie"] = "; ".join(f"{name}={value}" for name, value in self._cookies.items())
        headers.update(self.diagnostic_headers())
        await self._add_auth_headers(headers)
        return headers

    async def _add_auth_headers(self, headers: dict[str, str]) -> None:
        auth_type = self._auth_type
        if auth_type is RestAuthType.NO_AUTH:
            if self.client_name:
                headers["X-Client-Name"] = self.client_name
        elif auth_type is RestAuthType.BASIC:
            headers["Authorization"] = f"Basic {basic_credentials(self._username, self._password)}"
        elif auth_type is RestAuthType.WSSE:
            headers["X-WSSE"] = wsse_token(self._username, self._password)
            if self.client_name:
                headers["X-Client-Name"] = self.client_name
            headers["Authorization"] = 'WSSE profile="UsernameToken"'
        elif auth_type is RestAuthType.BEARER_TOKEN:
            headers["Authorization"] = f"Bearer {self.token}"
        elif auth_type is RestAuthType.QUASI_OAUTH2:
            # Suspends while a token request is outstanding
            await self.token_manager.ensure_token()
            headers["Authorization"] = f"Bearer {self.token_manager.access_token}"

    # ------------------------------------------------------------------
    # Reply bookkeeping
    # ------------------------------------------------------------------

    def _handle_reply(self, reply: NetworkReply) -> None:
        if self.timeout_ms > 0:
            loop = asyncio.get_running_loop()
            self._timers[reply] = loop.call_later(
                self.timeout_ms / 1000, self._on_reply_timeout, reply
            )
        reply.ssl_errors.connect(self._on_reply_ssl_errors)
        reply.error_occurred.connect(self._on_reply_error)
        reply.finished.connect(self._on_reply_finished)

    def _cleanup_timer(self, reply: NetworkReply) -> None:
        timer = self._timers.pop(reply, None)
        if timer is not None:
            timer.cancel()

    def _on_reply_timeout(self, reply: NetworkReply) -> None:
        self._timers.pop(reply, None)
        if reply.is_running:
            logger.warning(
                "Reply timed out, aborting",
                extra={"http_method": reply.verb, "http_url": str(reply.url), "timeout_ms": self.timeout_ms},
            )
            reply.abort()

    def _on_reply_ssl_errors(self, reply: NetworkReply, problems: list[SslProblem]) -> None:
        self._cleanup_timer(reply)
        if self.ignore_ssl_errors:
            return
        for problem in problems:
            logger.warning(
                "TLS problem",
                extra={"http_url": str(reply.url), "ssl_error_code": problem.code, "error_message": problem.message},
            )
        self.ssl_errors.emit(reply, problems)

    def _on_reply_error(self, reply: NetworkReply, code: int) -> None:
        self._cleanup_timer(reply)
        logger.warning(
            "Transport error",
            extra={
                "http_method": reply.verb,
                "http_url": str(reply.url),
                "http_status": reply.status,
                "transport_error": int(code),
                "error_message": reply.error_string,
            },
        )

    def _on_reply_finished(self, reply: NetworkReply) -> None:
        self._cleanup_timer(reply)
        self.finished.emit(reply)


__all__ = [
    "DEFAULT_REPLY_TIMEOUT_MS",
    "RestAuthType",
    "RestClient",
    "content_type_for",
    "local_ipv4_addresses",
    "parse_host",
]
