"""
restlink: asynchronous REST request orchestration.

Modules:
    transport   - NetworkReply handles and transport error codes
    client      - RestClient: headers, authentication, aiohttp exchange
    api         - RestApi: operation ids, pending table, single outcome per operation
    classifier  - Transport / HTTP status / TLS error classification
    decoder     - JSON entity decoding with error reporting
    entity      - RestEntity base model
    cache       - Weakly held canonical entity instances
    auth        - Quasi-OAuth2 token manager, Basic and WSSE headers
"""

from restlink.api import ErrorListener, RestApi
from restlink.auth import AuthState, QuasiOAuth2Token, QuasiOAuth2TokenManager
from restlink.cache import ObjectsCache, clear_objects_caches, get_objects_cache
from restlink.client import RestAuthType, RestClient
from restlink.decoder import EntityDecoder
from restlink.entity import RestEntity
from restlink.errors import (
    NETWORK_ERROR_OFFSET,
    NETWORK_MODULE_CODE,
    NETWORK_SSL_ERROR_OFFSET,
    Level,
    NetworkErrorCode,
    RestApiError,
    RestApiException,
)
from restlink.events import EventHook
from restlink.operations import OperationIdGenerator, PendingOperations
from restlink.transport import NetworkReply, SslProblem, TransportError
from restlink.version import __version__

__all__ = [
    "__version__",
    # Facade
    "RestApi",
    "ErrorListener",
    "RestClient",
    "RestAuthType",
    # Transport
    "NetworkReply",
    "SslProblem",
    "TransportError",
    # Errors
    "Level",
    "NetworkErrorCode",
    "RestApiError",
    "RestApiException",
    "NETWORK_ERROR_OFFSET",
    "NETWORK_SSL_ERROR_OFFSET",
    "NETWORK_MODULE_CODE",
    # Operations
    "OperationIdGenerator",
    "PendingOperations",
    "EventHook",
    # Entities
    "RestEntity",
    "EntityDecoder",
    "ObjectsCache",
    "get_objects_cache",
    "clear_objects_caches",
    # Auth
    "AuthState",
    "QuasiOAuth2Token",
    "QuasiOAuth2TokenManager",
]
