"""Tests for QuasiOAuth2TokenManager."""

import asyncio
import json
from datetime import UTC, datetime, timedelta

import pytest
from yarl import URL

from core.resilience.retry import RetryConfig
from restlink.auth.manager import (
    CANT_CONNECT_MESSAGE,
    WRONG_ANSWER_MESSAGE,
    WRONG_AUTHENTICATION_MESSAGE,
    QuasiOAuth2TokenManager,
)
from restlink.auth.models import AuthState
from restlink.transport import NetworkReply, TransportError


class FakeTokenEndpoint:
    """Token sender that answers from a script of outcomes, repeating the last one."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def __call__(self, path, body, headers):
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        reply = NetworkReply("POST", URL("https://auth.example.com").with_path(path))
        self.requests.append((path, body, dict(headers)))

        async def exchange():
            if isinstance(outcome, TransportError):
                reply.set_error(outcome, "transport failure")
            else:
                status, payload = outcome
                body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
                reply.set_response(status, "", {"Content-Type": "application/json"}, body)

        reply.start(exchange())
        return reply


def _manager(endpoint, retries=4):
    manager = QuasiOAuth2TokenManager(
        endpoint,
        username="user",
        password="secret",
        retry=RetryConfig.fixed(retries=retries, interval=0),
        refresh_interval=0,
    )
    events = {"succeeded": 0, "errors": []}

    def on_success():
        events["succeeded"] += 1

    manager.authentication_succeeded.connect(on_success)
    manager.authentication_error.connect(events["errors"].append)
    return manager, events


TOKEN = (200, {"access_token": "abc", "token_type": "bearer", "expires_in": 3600})


class TestAcquisition:

    @pytest.mark.asyncio
    async def test_success(self):
        endpoint = FakeTokenEndpoint(TOKEN)
        manager, events = _manager(endpoint)

        assert await manager.ensure_token() is True

        assert manager.state is AuthState.VALID
        assert manager.access_token == "abc"
        assert manager.has_valid_token()
        assert events == {"succeeded": 1, "errors": []}
        path, body, headers = endpoint.requests[0]
        assert path == "/oauth2/token"
        assert body == b"grant_type=password&username=user&password=secret"
        assert headers == {"Content-Type": "application/x-www-form-urlencoded"}

    @pytest.mark.asyncio
    async def test_valid_token_is_reused(self):
        endpoint = FakeTokenEndpoint(TOKEN)
        manager, _ = _manager(endpoint)

        await manager.ensure_token()
        await manager.ensure_token()

        assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    async def test_concurrent_waiters_share_one_request(self):
        endpoint = FakeTokenEndpoint(TOKEN)
        manager, events = _manager(endpoint)

        results = await asyncio.gather(*(manager.ensure_token() for _ in range(5)))

        assert results == [True] * 5
        assert len(endpoint.requests) == 1
        assert events["succeeded"] == 1

    @pytest.mark.asyncio
    async def test_five_retriable_failures_exhaust_budget(self):
        endpoint = FakeTokenEndpoint(TransportError.CONNECTION_REFUSED)
        manager, events = _manager(endpoint, retries=4)

        assert await manager.ensure_token() is False

        assert len(endpoint.requests) == 5
        assert manager.state is AuthState.FAILED
        assert manager.retries_left == 0
        assert events == {"succeeded": 0, "errors": [CANT_CONNECT_MESSAGE]}

    @pytest.mark.asyncio
    async def test_recovery_resets_retry_budget(self):
        endpoint = FakeTokenEndpoint(
            TransportError.HOST_NOT_FOUND,
            TransportError.REMOTE_HOST_CLOSED,
            TOKEN,
        )
        manager, events = _manager(endpoint, retries=4)

        assert await manager.ensure_token() is True

        assert len(endpoint.requests) == 3
        assert manager.retries_left == 4
        assert events == {"succeeded": 1, "errors": []}

    @pytest.mark.asyncio
    async def test_rejected_credentials_fail_without_retry(self):
        endpoint = FakeTokenEndpoint((401, {"error": "invalid_grant"}))
        manager, events = _manager(endpoint)

        assert await manager.ensure_token() is False

        assert len(endpoint.requests) == 1
        assert manager.retries_left == 4
        assert events["errors"] == [WRONG_AUTHENTICATION_MESSAGE]

    @pytest.mark.asyncio
    async def test_non_retriable_transport_error(self):
        endpoint = FakeTokenEndpoint(TransportError.TOO_MANY_REDIRECTS)
        manager, events = _manager(endpoint)

        assert await manager.ensure_token() is False

        assert len(endpoint.requests) == 1
        assert events["errors"] == [CANT_CONNECT_MESSAGE]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "outcome",
        [(200, b"not json"), (200, [1, 2]), (200, {"token_type": "bearer"}), (200, {"access_token": ""})],
    )
    async def test_malformed_answer_fails_immediately(self, outcome):
        endpoint = FakeTokenEndpoint(outcome)
        manager, events = _manager(endpoint)

        assert await manager.ensure_token() is False

        assert len(endpoint.requests) == 1
        assert manager.state is AuthState.FAILED
        assert events["errors"] == [WRONG_ANSWER_MESSAGE]

    @pytest.mark.asyncio
    async def test_retry_wait_state_between_attempts(self):
        endpoint = FakeTokenEndpoint(TransportError.CONNECTION_REFUSED, TOKEN)
        manager = QuasiOAuth2TokenManager(
            endpoint,
            username="user",
            password="secret",
            retry=RetryConfig.fixed(retries=1, interval=0.05),
            refresh_interval=0,
        )

        task = manager.authenticate()
        states = set()
        while not task.done():
            states.add(manager.state)
            await asyncio.sleep(0.01)

        assert AuthState.RETRY_WAIT in states
        assert manager.state is AuthState.VALID


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_refresh_timer_requests_new_token(self):
        endpoint = FakeTokenEndpoint(TOKEN)
        manager = QuasiOAuth2TokenManager(
            endpoint,
            username="user",
            password="secret",
            retry=RetryConfig.fixed(retries=0, interval=0),
            refresh_interval=0.02,
        )

        await manager.authenticate()
        await asyncio.sleep(0.1)
        await manager.stop()

        assert len(endpoint.requests) >= 2
        assert manager.access_token == "abc"

    @pytest.mark.asyncio
    async def test_stop_cancels_waiters(self):
        endpoint = FakeTokenEndpoint(TransportError.CONNECTION_REFUSED)
        manager = QuasiOAuth2TokenManager(
            endpoint,
            username="user",
            password="secret",
            retry=RetryConfig.fixed(retries=4, interval=10),
            refresh_interval=0,
        )

        waiter = asyncio.create_task(manager.ensure_token())
        await asyncio.sleep(0.01)
        assert manager.state is AuthState.RETRY_WAIT

        await manager.stop()

        assert await waiter is False
        assert manager.state is AuthState.IDLE

    def test_set_token(self):
        manager = QuasiOAuth2TokenManager(FakeTokenEndpoint(TOKEN))
        manager.set_token("preset", datetime.now(UTC) + timedelta(hours=1))

        assert manager.state is AuthState.VALID
        assert manager.has_valid_token()
        assert manager.access_token == "preset"

    def test_expired_preset_token_is_not_valid(self):
        manager = QuasiOAuth2TokenManager(FakeTokenEndpoint(TOKEN))
        manager.set_token("old", datetime.now(UTC) - timedelta(seconds=1))

        assert not manager.has_valid_token()

    def test_credentials(self):
        manager = QuasiOAuth2TokenManager(FakeTokenEndpoint(TOKEN))
        assert not manager.has_credentials
        manager.set_credentials("user", "secret")
        assert manager.has_credentials
