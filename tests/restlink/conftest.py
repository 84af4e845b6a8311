"""Fixtures for restlink tests: a RestClient with a scripted network exchange."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from restlink.client import RestClient
from restlink.transport import NetworkReply, SslProblem, TransportError

Step = Callable[[NetworkReply], Awaitable[None]]


class ScriptedRestClient(RestClient):
    """
    RestClient whose network exchange is replaced by scripted outcomes.

    Header building, timeouts, abort and event ordering all run for real;
    only ``_send`` is replaced. Steps are consumed in order, except for
    paths registered with ``path=`` which answer every request to them.
    """

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("host", "api.example.com")
        super().__init__(**kwargs)
        # Avoid resolving the local host name in tests
        self._ip_addresses = ["10.0.0.5"]
        self.steps: list[Step] = []
        self.routes: dict[str, Step] = {}
        self.sent: list[tuple[NetworkReply, dict[str, str], Any]] = []
        self.replies: list[NetworkReply] = []

    def _add_step(self, step: Step, path: str | None) -> None:
        if path is None:
            self.steps.append(step)
        else:
            self.routes[path] = step

    def queue_response(
        self,
        status: int = 200,
        body: Any = b"",
        content_type: str = "application/json",
        reason: str = "",
        path: str | None = None,
    ) -> None:
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
        elif isinstance(body, str):
            body = body.encode("utf-8")

        async def step(reply: NetworkReply) -> None:
            reply.set_response(status, reason, {"Content-Type": content_type}, body)

        self._add_step(step, path)

    def queue_error(
        self,
        code: TransportError,
        message: str = "",
        problems: list[SslProblem] | None = None,
        path: str | None = None,
    ) -> None:
        async def step(reply: NetworkReply) -> None:
            reply.set_error(code, message, problems)

        self._add_step(step, path)

    def queue_hang(self, path: str | None = None) -> None:
        async def step(reply: NetworkReply) -> None:
            await asyncio.Event().wait()

        self._add_step(step, path)

    def _handle_reply(self, reply: NetworkReply) -> None:
        self.replies.append(reply)
        super()._handle_reply(reply)

    async def _send(self, reply: NetworkReply, headers, data) -> None:
        self.sent.append((reply, dict(headers), data))
        step = self.routes.get(reply.url.path)
        if step is None:
            step = self.steps.pop(0) if self.steps else None
        if step is None:
            reply.set_response(200, "OK", {"Content-Type": "application/json"}, b"{}")
            return
        await step(reply)

    async def wait_all(self) -> None:
        """Wait until every reply issued so far has finished and fired its events."""
        seen = 0
        while seen < len(self.replies):
            pending = self.replies[seen:]
            seen = len(self.replies)
            await asyncio.gather(*(reply.wait() for reply in pending))

    def abort_all(self) -> None:
        for reply in self.replies:
            if reply.loop is not None and not reply.loop.is_closed():
                reply.abort()


@pytest.fixture
def make_client():
    """Factory for scripted clients; replies still running at teardown are aborted."""
    clients: list[ScriptedRestClient] = []

    def factory(**kwargs: Any) -> ScriptedRestClient:
        client = ScriptedRestClient(**kwargs)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.abort_all()


@pytest.fixture
def client(make_client) -> ScriptedRestClient:
    return make_client()
