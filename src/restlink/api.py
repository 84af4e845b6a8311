"""
Operation-level facade over RestClient.

RestApi assigns an operation id to every request, keeps the pending table,
routes the three reply events through the error classifier and guarantees a
single terminal outcome per operation: the reply handler runs, or one error
record is emitted, never both.
"""

import asyncio
import logging
from collections.abc import Callable, Hashable, Mapping
from typing import TYPE_CHECKING, Any, Sequence

import aiohttp

from core.logging.context_managers import LogContext
from core.logging.utilities import log_exception, log_with_context
from restlink.cache import ObjectsCache
from restlink.classifier import (
    canceled_error,
    classify_finished_reply,
    classify_ssl_problems,
    classify_transport_error,
)
from restlink.client import Query, RestClient
from restlink.decoder import EntityDecoder, EntityFactory
from restlink.errors import RestApiError
from restlink.events import EventHook
from restlink.operations import (
    OperationIdGenerator,
    PendingOperations,
    ReplyHandler,
    get_default_id_generator,
)
from restlink.transport import NetworkReply, SslProblem

if TYPE_CHECKING:
    from config.config import RestClientConfig

logger = logging.getLogger(__name__)

ErrorListener = Callable[[int, RestApiError], Any]

VERBS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def _dispatch(loop: asyncio.AbstractEventLoop | None, fn: Callable[..., Any], *args: Any) -> None:
    """Run ``fn`` now if on ``loop`` (or no loop is running), else queue it onto ``loop``."""
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if loop is None or running is loop or not loop.is_running():
        fn(*args)
    else:
        loop.call_soon_threadsafe(fn, *args)


class RestApi:
    """
    Issues operations and reports their outcome.

    Subclass it per remote API and build typed methods on top of
    :meth:`issue` or :meth:`call`.

    Usage:
        api = RestApi(client, server_error_attributes=["errorMessage"])
        api.add_error_listener(lambda op, error: print(op, error))

        def on_projects(operation_id, reply):
            projects = api.parse_entities_list(Project, reply, operation_id, "items")

        operation_id = api.get_resource("/projects", on_projects)
        api.abort_request(operation_id)  # from any thread
    """

    def __init__(
        self,
        rest_client: RestClient | None = None,
        vendor: str = "",
        server_error_attributes: Sequence[str] = (),
        id_generator: OperationIdGenerator | None = None,
        name: str | None = None,
    ):
        self.vendor = vendor
        self.name = name or type(self).__name__
        self._ids = id_generator or get_default_id_generator()
        self._pending = PendingOperations()
        self._rest_client: RestClient | None = None

        self.error_occurred = EventHook("error_occurred")
        self.decoder = EntityDecoder(self._report_error, server_error_attributes)

        if rest_client is not None:
            self.rest_client = rest_client

    @classmethod
    def from_config(cls, config: "RestClientConfig", **kwargs: Any) -> "RestApi":
        return cls(
            RestClient.from_config(config),
            vendor=config.vendor,
            server_error_attributes=config.server_error_attributes,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def rest_client(self) -> RestClient | None:
        return self._rest_client

    @rest_client.setter
    def rest_client(self, client: RestClient | None) -> None:
        if client is self._rest_client:
            return
        previous = self._rest_client
        if previous is not None:
            previous.finished.disconnect(self._on_reply_finished)
            previous.ssl_errors.disconnect(self._on_ssl_errors)
            self.complete_all()
        self._rest_client = client
        if client is not None:
            client.finished.connect(self._on_reply_finished)
            client.ssl_errors.connect(self._on_ssl_errors)

    @property
    def server_error_attributes(self) -> list[str]:
        return self.decoder.server_error_attributes

    @server_error_attributes.setter
    def server_error_attributes(self, attributes: Sequence[str]) -> None:
        self.decoder.server_error_attributes = list(attributes)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_logged_out(self) -> bool:
        return self._rest_client is None or self._rest_client.is_logged_out()

    def add_error_listener(self, listener: ErrorListener) -> None:
        self.error_occurred.connect(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        self.error_occurred.disconnect(listener)

    # ------------------------------------------------------------------
    # Issuing
    # ------------------------------------------------------------------

    def issue(
        self,
        verb: str,
        path: str,
        handler: ReplyHandler,
        query: Query = None,
        body: bytes = b"",
        multipart: aiohttp.MultipartWriter | None = None,
    ) -> int:
        """
        Issue a request and return its operation id.

        ``handler(operation_id, reply)`` runs at most once, only for a reply
        that passed classification. Must be called from the owning loop.
        """
        verb = verb.upper()
        if verb not in VERBS:
            raise ValueError(f"Unsupported HTTP verb: {verb}")
        client = self._rest_client
        if client is None:
            raise RuntimeError(f"{self.name} has no rest client")

        operation_id = self._ids.next_id()
        if multipart is not None:
            reply = client.post_multipart(path, multipart, query)
        elif verb == "GET":
            reply = client.get(path, query, self.vendor)
        elif verb == "POST":
            reply = client.post(path, query, body, self.vendor)
        elif verb == "PUT":
            reply = client.put(path, query, body, self.vendor)
        elif verb == "PATCH":
            reply = client.patch(path, query, body, self.vendor)
        else:
            reply = client.delete(path, query, self.vendor)

        # Reply events are delivered by the loop, so this entry is in place first
        self._pending.add(reply, operation_id, handler)
        reply.error_occurred.connect(self._on_reply_error)

        logger.debug(
            "Operation issued",
            extra={"operation_id": operation_id, "http_method": verb, "http_url": str(reply.url)},
        )
        return operation_id

    def get_resource(self, path: str, handler: ReplyHandler, query: Query = None) -> int:
        return self.issue("GET", path, handler, query=query)

    def post_resource(self, path: str, handler: ReplyHandler, query: Query = None, body: bytes = b"") -> int:
        return self.issue("POST", path, handler, query=query, body=body)

    def put_resource(self, path: str, handler: ReplyHandler, query: Query = None, body: bytes = b"") -> int:
        return self.issue("PUT", path, handler, query=query, body=body)

    def patch_resource(self, path: str, handler: ReplyHandler, query: Query = None, body: bytes = b"") -> int:
        return self.issue("PATCH", path, handler, query=query, body=body)

    def delete_resource(self, path: str, handler: ReplyHandler, query: Query = None) -> int:
        return self.issue("DELETE", path, handler, query=query)

    def post_multipart(
        self,
        path: str,
        handler: ReplyHandler,
        multipart: aiohttp.MultipartWriter,
        query: Query = None,
    ) -> int:
        return self.issue("POST", path, handler, query=query, multipart=multipart)

    async def call(
        self,
        verb: str,
        path: str,
        parser: Callable[[int, NetworkReply], Any] | None = None,
        query: Query = None,
        body: bytes = b"",
        multipart: aiohttp.MultipartWriter | None = None,
    ) -> Any:
        """
        Issue a request and await its single outcome.

        Returns:
            ``parser(operation_id, reply)``, or the reply itself without a parser

        Raises:
            RestApiException: the operation ended with an error record,
                including errors the parser reported while decoding
        """
        future = asyncio.get_running_loop().create_future()
        operation_id = 0

        def on_error(error_operation_id: int, error: RestApiError) -> None:
            if error_operation_id == operation_id and not future.done():
                future.set_exception(error.to_exception())

        def on_reply(reply_operation_id: int, reply: NetworkReply) -> None:
            try:
                result = parser(reply_operation_id, reply) if parser else reply
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
                return
            if not future.done():
                future.set_result(result)

        self.add_error_listener(on_error)
        try:
            operation_id = self.issue(verb, path, on_reply, query=query, body=body, multipart=multipart)
            return await future
        except asyncio.CancelledError:
            if operation_id:
                self.abort_request(operation_id)
            raise
        finally:
            self.remove_error_listener(on_error)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def abort_request(self, operation_id: int) -> None:
        """
        Cancel an operation. Safe from any thread; a no-op for unknown ids.

        The entry is removed before the reply is aborted, so a completion
        racing with the abort finds nothing to deliver.
        """
        found = self._pending.take_by_operation_id(operation_id)
        if found is None:
            return
        reply, _ = found
        _dispatch(reply.loop, self._report_error, operation_id, canceled_error())
        reply.abort()

    def complete_all(self) -> None:
        """Cancel every pending operation (used on teardown and client change)."""
        entries = self._pending.take_all()
        if entries:
            logger.debug("Cancelling pending operations", extra={"pending_operations": len(entries)})
        for reply, entry in entries:
            _dispatch(reply.loop, self._report_error, entry.operation_id, canceled_error())
            reply.abort()

    async def close(self) -> None:
        self.complete_all()
        if self._rest_client is not None:
            await self._rest_client.close()

    # ------------------------------------------------------------------
    # Decoding helpers
    # ------------------------------------------------------------------

    def parse_entity_object(self, reply: NetworkReply, operation_id: int) -> dict | None:
        return self.decoder.decode_object(reply, operation_id)

    def parse_entity(
        self,
        entity_type: EntityFactory,
        source: NetworkReply | bytes | Mapping[str, Any],
        operation_id: int,
        cache: ObjectsCache | None = None,
        key: Callable[[Any], Hashable] | None = None,
    ) -> Any | None:
        return self.decoder.parse_entity(entity_type, source, operation_id, cache, key)

    def parse_entities_list(
        self,
        entity_type: EntityFactory,
        reply: NetworkReply | bytes,
        operation_id: int,
        attribute: str = "",
        cache: ObjectsCache | None = None,
        key: Callable[[Any], Hashable] | None = None,
    ) -> list | None:
        return self.decoder.parse_entities_list(entity_type, reply, operation_id, attribute, cache, key)

    def parse_strings_list(
        self, reply: NetworkReply | bytes, operation_id: int, attribute: str = ""
    ) -> list[str] | None:
        return self.decoder.parse_strings_list(reply, operation_id, attribute)

    # ------------------------------------------------------------------
    # Reply events
    # ------------------------------------------------------------------

    def _on_reply_finished(self, reply: NetworkReply) -> None:
        self._reply_finished(reply)

    def _reply_finished(self, reply: NetworkReply, force_user_friendly: bool = False) -> None:
        if reply not in self._pending:
            return
        error = classify_finished_reply(reply, force_user_friendly)
        if error is None:
            self._run_reply_handler(reply)
            return
        entry = self._pending.take(reply)
        if entry is not None:
            self._report_error(entry.operation_id, error)

    def _on_reply_error(self, reply: NetworkReply, code: int) -> None:
        self._reply_error_occurred(reply)

    def _reply_error_occurred(self, reply: NetworkReply, force_user_friendly: bool = False) -> None:
        error = classify_transport_error(reply, force_user_friendly)
        if error is None:
            return
        entry = self._pending.take(reply)
        if entry is not None:
            self._report_error(entry.operation_id, error)

    def _on_ssl_errors(self, reply: NetworkReply, problems: list[SslProblem]) -> None:
        self._ssl_errors_occurred(reply, problems)

    def _ssl_errors_occurred(
        self,
        reply: NetworkReply,
        problems: list[SslProblem],
        force_user_friendly: bool = False,
    ) -> None:
        if reply not in self._pending:
            return
        error = classify_ssl_problems(reply, problems, force_user_friendly)
        if error is None:
            return
        entry = self._pending.take(reply)
        if entry is not None:
            self._report_error(entry.operation_id, error)

    def _run_reply_handler(self, reply: NetworkReply) -> None:
        entry = self._pending.take(reply)
        if entry is None:
            return
        with LogContext(operation_id=entry.operation_id, api=self.name):
            try:
                entry.handler(entry.operation_id, reply)
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    "Reply handler raised",
                    operation_id=entry.operation_id,
                    http_url=str(reply.url),
                )

    def _report_error(self, operation_id: int, error: RestApiError) -> None:
        log_with_context(
            logger,
            logging.WARNING,
            f"Operation failed: {error}",
            operation_id=operation_id,
            error_level=error.level.name,
            error_code=error.code,
            error_message=error.message,
            user_friendly=error.user_friendly,
        )
        with LogContext(operation_id=operation_id, api=self.name):
            self.error_occurred.emit(operation_id, error)


__all__ = ["RestApi", "ErrorListener"]
