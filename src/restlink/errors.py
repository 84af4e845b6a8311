"""
Normalized error records.

Every failure of a REST exchange (transport, HTTP status, TLS, payload
format, server-reported) is reduced to a :class:`RestApiError` and delivered
through the error event of :class:`restlink.api.RestApi`.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum

from core.errors.exceptions import RestLinkError, classify_http_status
from core.types import ErrorCategory
from restlink.transport import TransportError

# Transport codes are reported as NETWORK_ERROR_OFFSET + code so they never
# collide with raw HTTP statuses; TLS codes use a second, disjoint band.
NETWORK_ERROR_OFFSET = 1000
NETWORK_SSL_ERROR_OFFSET = 1500

NETWORK_MODULE_CODE = 300


class Level(Enum):
    """Error record level."""

    NO_ERROR = "no_error"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    JSON_PARSE_ERROR = "json_parse_error"
    JSON_DATA_ERROR = "json_data_error"
    JSON_SERVER_ERROR = "json_server_error"

    # TLS failures are client errors in the NETWORK_SSL_ERROR_OFFSET band
    SSL_ERROR = "client_error"


class NetworkErrorCode(IntEnum):
    """Domain error codes carried by records of the network module."""

    NO_ERROR = 0
    SERVER_ERROR = 1
    SERVICE_UNAVAILABLE = 2
    SSL_ERROR = 3
    INVALID_REPLY = 4


@dataclass
class RestApiError:
    """
    A classified failure of one operation.

    Attributes:
        level: Which failure channel produced the record
        code: HTTP status, offset transport code, offset TLS code, or JSON parse code
        module_code: Module that produced the record
        error_code: Domain error code (see NetworkErrorCode)
        message: Human readable message (may be empty)
        user_friendly: Whether the message can be shown to end users as is
    """

    level: Level = Level.NO_ERROR
    code: int = 0
    module_code: int = 0
    error_code: int = 0
    message: str = ""
    user_friendly: bool = False

    def __bool__(self) -> bool:
        return self.level is not Level.NO_ERROR

    def __str__(self) -> str:
        return self.to_string()

    def to_string(self) -> str:
        if self.level is Level.NO_ERROR:
            return ""
        return f"{self.code}: {self.message}"

    def reset(self) -> None:
        self.level = Level.NO_ERROR
        self.code = 0
        self.module_code = 0
        self.error_code = 0
        self.message = ""
        self.user_friendly = False

    def is_ssl_error(self) -> bool:
        return self.level is Level.SSL_ERROR and self.error_code == NetworkErrorCode.SSL_ERROR

    def is_network_error(self) -> bool:
        """ClientError carrying an offset transport code (TLS records excluded)."""
        return (
            self.level is Level.CLIENT_ERROR
            and not self.is_ssl_error()
            and self.code > NETWORK_ERROR_OFFSET
        )

    def to_network_error(self) -> TransportError:
        """Transport code this record was built from, or UNKNOWN_NETWORK_ERROR."""
        if not self.is_network_error():
            return TransportError.UNKNOWN_NETWORK_ERROR
        try:
            return TransportError(self.code - NETWORK_ERROR_OFFSET)
        except ValueError:
            return TransportError.UNKNOWN_NETWORK_ERROR

    @property
    def category(self) -> ErrorCategory:
        if self.level is Level.CLIENT_ERROR:
            # TLS codes may fall below the TLS offset (unspecified problem is -1)
            if self.is_ssl_error():
                return ErrorCategory.PERMANENT
            if self.error_code == NetworkErrorCode.SERVICE_UNAVAILABLE:
                return ErrorCategory.TRANSIENT
            if self.code == 401 or self.to_network_error() is TransportError.AUTHENTICATION_REQUIRED:
                return ErrorCategory.AUTH
            return ErrorCategory.UNKNOWN
        if self.level is Level.SERVER_ERROR:
            return classify_http_status(self.code)
        if self.level is Level.NO_ERROR:
            return ErrorCategory.UNKNOWN
        return ErrorCategory.PERMANENT

    def to_exception(self) -> "RestApiException":
        return RestApiException(self)


class RestApiException(RestLinkError):
    """Raised to coroutine callers when an operation ends with an error record."""

    def __init__(self, error: RestApiError, cause: Exception | None = None):
        self.error = error
        super().__init__(
            error.to_string(),
            cause=cause,
            context={
                "level": error.level.name,
                "code": error.code,
                "module_code": error.module_code,
                "error_code": error.error_code,
            },
        )

    @property
    def category(self) -> ErrorCategory:  # type: ignore[override]
        return self.error.category


__all__ = [
    "NETWORK_ERROR_OFFSET",
    "NETWORK_SSL_ERROR_OFFSET",
    "NETWORK_MODULE_CODE",
    "Level",
    "NetworkErrorCode",
    "RestApiError",
    "RestApiException",
]
