"""
Entity decoding from response bodies.

JSON text parsing is delegated to the standard ``json`` module; this module
decides which shapes are acceptable, reports problems as error records and
hands well-formed objects to the entity factory.
"""

import json
import logging
from collections.abc import Callable, Hashable, Mapping, Sequence
from enum import IntEnum
from typing import Any, TypeVar, Union

from restlink.cache import ObjectsCache
from restlink.classifier import classify_server_error_attributes
from restlink.entity import RestEntity
from restlink.errors import NETWORK_MODULE_CODE, Level, NetworkErrorCode, RestApiError
from restlink.transport import NetworkReply

logger = logging.getLogger(__name__)

E = TypeVar("E")

EntityFactory = Union[type[RestEntity], Callable[[Mapping[str, Any]], Any]]
ErrorReporter = Callable[[int, RestApiError], None]
Source = Union[bytes, bytearray, str, NetworkReply]


class JsonParseErrorCode(IntEnum):
    NO_ERROR = 0
    UNTERMINATED_OBJECT = 1
    MISSING_NAME_SEPARATOR = 2
    UNTERMINATED_ARRAY = 3
    MISSING_VALUE_SEPARATOR = 4
    ILLEGAL_VALUE = 5
    ILLEGAL_NUMBER = 6
    ILLEGAL_ESCAPE_SEQUENCE = 8
    ILLEGAL_UTF8_STRING = 9
    UNTERMINATED_STRING = 10
    GARBAGE_AT_END = 14


# Prefixes of json.JSONDecodeError.msg
_PARSE_ERROR_CODES = (
    ("Expecting value", JsonParseErrorCode.ILLEGAL_VALUE),
    ("Expecting ',' delimiter", JsonParseErrorCode.MISSING_VALUE_SEPARATOR),
    ("Expecting ':' delimiter", JsonParseErrorCode.MISSING_NAME_SEPARATOR),
    ("Expecting property name", JsonParseErrorCode.UNTERMINATED_OBJECT),
    ("Unterminated string", JsonParseErrorCode.UNTERMINATED_STRING),
    ("Invalid \\escape", JsonParseErrorCode.ILLEGAL_ESCAPE_SEQUENCE),
    ("Invalid \\u", JsonParseErrorCode.ILLEGAL_ESCAPE_SEQUENCE),
    ("Extra data", JsonParseErrorCode.GARBAGE_AT_END),
)


def parse_error_code(exc: ValueError) -> JsonParseErrorCode:
    if isinstance(exc, UnicodeDecodeError):
        return JsonParseErrorCode.ILLEGAL_UTF8_STRING
    message = getattr(exc, "msg", str(exc))
    for prefix, code in _PARSE_ERROR_CODES:
        if message.startswith(prefix):
            return code
    return JsonParseErrorCode.ILLEGAL_VALUE


def json_parse_error(exc: ValueError) -> RestApiError:
    return RestApiError(
        level=Level.JSON_PARSE_ERROR,
        code=int(parse_error_code(exc)),
        module_code=NETWORK_MODULE_CODE,
        error_code=NetworkErrorCode.INVALID_REPLY,
        message=f"JSON error: {getattr(exc, 'msg', None) or exc}",
    )


def json_data_error(message: str) -> RestApiError:
    return RestApiError(
        level=Level.JSON_DATA_ERROR,
        code=0,
        module_code=NETWORK_MODULE_CODE,
        error_code=NetworkErrorCode.INVALID_REPLY,
        message=message,
    )


def empty_entity_error() -> RestApiError:
    return RestApiError(
        level=Level.JSON_PARSE_ERROR,
        code=0,
        module_code=NETWORK_MODULE_CODE,
        error_code=NetworkErrorCode.INVALID_REPLY,
        message="JSON error: empty entity data",
    )


def _body_of(source: Source) -> bytes | str:
    if isinstance(source, NetworkReply):
        return source.read()
    if isinstance(source, bytearray):
        return bytes(source)
    return source


def _factory_of(entity_type: EntityFactory) -> Callable[[Mapping[str, Any]], Any]:
    from_json = getattr(entity_type, "from_json", None)
    if callable(from_json):
        return from_json
    return entity_type


class EntityDecoder:
    """
    Turns response bodies into entities, reporting every shape problem once.

    Args:
        report: Called with (operation_id, error record) for each problem
        server_error_attributes: Ordered attribute names that carry an
            application-level error message in a JSON object
    """

    def __init__(self, report: ErrorReporter, server_error_attributes: Sequence[str] = ()):
        self._report = report
        self.server_error_attributes = list(server_error_attributes)

    def _parse(self, source: Source, operation_id: int) -> tuple[bool, Any]:
        try:
            return True, json.loads(_body_of(source))
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            error = json_parse_error(e)
            logger.warning(
                "Malformed JSON in response",
                extra={"operation_id": operation_id, "error_code": error.code, "error_message": error.message},
            )
            self._report(operation_id, error)
            return False, None

    def check_server_error(self, payload: Any, operation_id: int) -> bool:
        """Report a JsonServerError if ``payload`` carries a server-error attribute."""
        if not isinstance(payload, Mapping):
            return False
        error = classify_server_error_attributes(payload, self.server_error_attributes)
        if error is None:
            return False
        self._report(operation_id, error)
        return True

    def decode_object(self, source: Source, operation_id: int) -> dict | None:
        """
        Parse a body expected to hold one JSON object.

        Returns:
            None on a syntax error. An empty dict, after reporting
            "empty entity data", when the body is valid JSON but not a
            non-empty object. Otherwise the object.
        """
        ok, value = self._parse(source, operation_id)
        if not ok:
            return None
        if not isinstance(value, dict) or not value:
            self._report(operation_id, empty_entity_error())
            return {}
        return value

    def decode_list(self, source: Source, operation_id: int, attribute: str = "") -> list | None:
        """
        Parse a body expected to hold a JSON array, directly or under ``attribute``.

        Returns:
            The array, or None after reporting why no array was found.
        """
        ok, value = self._parse(source, operation_id)
        if not ok:
            return None
        if isinstance(value, list):
            return value
        if isinstance(value, dict):
            nested = value.get(attribute)
            if isinstance(nested, list):
                return nested
            if self.check_server_error(value, operation_id):
                return None
        self._report(operation_id, json_data_error("Can't create list of entities from server response"))
        return None

    def _reconcile(
        self,
        entity: E,
        cache: ObjectsCache | None,
        key: Callable[[E], Hashable] | None,
    ) -> E:
        if cache is None:
            return entity
        if key is not None:
            cache_key = key(entity)
        else:
            default_key = getattr(entity, "cache_key", None)
            cache_key = default_key() if callable(default_key) else None
        if cache_key is None:
            return entity
        return cache.reconcile(cache_key, entity)

    def parse_entity(
        self,
        entity_type: EntityFactory,
        source: Source | Mapping[str, Any],
        operation_id: int,
        cache: ObjectsCache | None = None,
        key: Callable[[Any], Hashable] | None = None,
    ) -> Any | None:
        """Decode one entity from a body or an already decoded object."""
        if isinstance(source, Mapping):
            payload = source
        else:
            payload = self.decode_object(source, operation_id)
            if not payload:
                return None

        entity = _factory_of(entity_type)(payload)
        if entity is None:
            if not self.check_server_error(payload, operation_id):
                self._report(operation_id, json_data_error("Can't create entity from server response"))
            return None
        return self._reconcile(entity, cache, key)

    def parse_entities_list(
        self,
        entity_type: EntityFactory,
        source: Source,
        operation_id: int,
        attribute: str = "",
        cache: ObjectsCache | None = None,
        key: Callable[[Any], Hashable] | None = None,
    ) -> list | None:
        """
        Decode a list of entities.

        Elements that are not objects, or that the factory rejects, are
        skipped without reporting an error.
        """
        values = self.decode_list(source, operation_id, attribute)
        if values is None:
            return None

        factory = _factory_of(entity_type)
        entities = []
        for value in values:
            if not isinstance(value, Mapping):
                continue
            entity = factory(value)
            if entity is None:
                continue
            entities.append(self._reconcile(entity, cache, key))

        skipped = len(values) - len(entities)
        if skipped:
            logger.debug(
                "Skipped malformed list elements",
                extra={
                    "operation_id": operation_id,
                    "entity_type": getattr(entity_type, "__name__", str(entity_type)),
                    "elements_total": len(values),
                    "elements_skipped": skipped,
                },
            )
        return entities

    def parse_strings_list(self, source: Source, operation_id: int, attribute: str = "") -> list[str] | None:
        """Decode a list of non-empty strings; other elements are skipped."""
        values = self.decode_list(source, operation_id, attribute)
        if values is None:
            return None
        return [value for value in values if isinstance(value, str) and value]


__all__ = [
    "JsonParseErrorCode",
    "EntityDecoder",
    "EntityFactory",
    "parse_error_code",
    "json_parse_error",
    "json_data_error",
    "empty_entity_error",
]
