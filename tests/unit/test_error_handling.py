"""Unit tests for error classification, node error boundaries and the retry policy."""

import asyncio

import pytest

from agentrelay.config.settings import RetrySettings
from agentrelay.graph.state import DispatchPhase
from agentrelay.runtime.retry import NO_RETRY, RetryPolicy, is_retryable
from agentrelay.utils.error_handler import (
    AgentRelayError,
    BudgetExceeded,
    ConfigurationError,
    HandoffCycleError,
    HandoffLimitExceeded,
    ProviderError,
    TurnBudgetExceeded,
    classify_provider_error,
    handle_model_error,
    with_error_boundary,
)


class FakeAPIError(Exception):
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class TestErrorTypes:
    def test_recoverability(self):
        assert TurnBudgetExceeded("ops", 3).recoverable is True
        assert HandoffCycleError("triage", ["triage"]).recoverable is True
        assert ConfigurationError("bad").recoverable is False
        assert ProviderError("boom").recoverable is False

    def test_limit_is_a_cycle_error(self):
        error = HandoffLimitExceeded("billing", ["operations"], 1)

        assert isinstance(error, HandoffCycleError)
        assert "limit of 1 handoff(s)" in error.message

    def test_to_dict(self):
        data = TurnBudgetExceeded("ops", 3).to_dict()

        assert data["kind"] == "TurnBudgetExceeded"
        assert data["recoverable"] is True
        assert "3 turn(s)" in data["message"]

    def test_user_message_defaults_to_message(self):
        assert AgentRelayError("plain").user_message == "plain"


class TestClassifyProviderError:
    @pytest.mark.parametrize(
        "error,retryable",
        [
            (FakeAPIError("Too many requests", 429), True),
            (FakeAPIError("Bad gateway", 502), True),
            (FakeAPIError("Bad request", 400), False),
            (FakeAPIError("invalid_api_key", 401), False),
            (asyncio.TimeoutError(), True),
            (ConnectionError("reset by peer"), True),
            (RuntimeError("Request timed out"), True),
            (RuntimeError("context_length exceeded"), False),
            (ValueError("weird"), False),
        ],
    )
    def test_retryable_classification(self, error, retryable):
        assert classify_provider_error(error).retryable is retryable

    def test_status_code_kept(self):
        assert classify_provider_error(FakeAPIError("Too many requests", 429)).status_code == 429

    def test_provider_error_passes_through(self):
        original = ProviderError("x", retryable=True)

        assert classify_provider_error(original) is original

    def test_user_messages(self):
        assert "rate limiting" in handle_model_error(RuntimeError("rate_limit hit"))
        assert "too long" in handle_model_error(RuntimeError("context_length exceeded"))
        assert "temporarily unavailable" in handle_model_error(RuntimeError("other"))


class TestErrorBoundary:
    @pytest.mark.asyncio
    async def test_relay_error_becomes_terminal_update(self):
        @with_error_boundary("agent")
        async def node(state):
            raise BudgetExceeded(spent=1, limit=1)

        update = await node({})

        assert update["phase"] == DispatchPhase.TERMINAL
        assert isinstance(update["error"], BudgetExceeded)

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self):
        @with_error_boundary("tools")
        async def node(state):
            raise KeyError("active_agent")

        update = await node({})

        assert type(update["error"]) is AgentRelayError
        assert "Unexpected error in tools" in update["error"].message

    def test_sync_node(self):
        @with_error_boundary("select")
        def node(state):
            return {"phase": DispatchPhase.ACTIVE}

        assert node({}) == {"phase": DispatchPhase.ACTIVE}

    @pytest.mark.asyncio
    async def test_cancellation_not_caught(self):
        @with_error_boundary("agent")
        async def node(state):
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await node({})


class TestRetryPolicy:
    def test_is_retryable(self):
        assert is_retryable(ProviderError("x", retryable=True))
        assert not is_retryable(ProviderError("x"))
        assert not is_retryable(TimeoutError())

    def test_from_settings(self):
        policy = RetryPolicy.from_settings(RetrySettings(max_attempts=5, min_wait=0.5, max_wait=2, multiplier=2))

        assert policy == RetryPolicy(max_attempts=5, min_wait=0.5, max_wait=2.0, multiplier=2.0)

    @pytest.mark.asyncio
    async def test_retries_retryable_errors(self):
        attempts = 0
        policy = RetryPolicy(max_attempts=3, min_wait=0, max_wait=0, multiplier=0)

        async for attempt in policy.retrying():
            with attempt:
                attempts += 1
                if attempts < 3:
                    raise ProviderError("rate limited", retryable=True)

        assert attempts == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error_when_exhausted(self):
        attempts = 0
        policy = RetryPolicy(max_attempts=2, min_wait=0, max_wait=0, multiplier=0)

        with pytest.raises(ProviderError, match="still limited"):
            async for attempt in policy.retrying():
                with attempt:
                    attempts += 1
                    raise ProviderError("still limited", retryable=True)

        assert attempts == 2

    @pytest.mark.asyncio
    async def test_fatal_errors_not_retried(self):
        attempts = 0

        with pytest.raises(ProviderError):
            async for attempt in RetryPolicy(min_wait=0, max_wait=0).retrying():
                with attempt:
                    attempts += 1
                    raise ProviderError("invalid key", retryable=False)

        assert attempts == 1

    @pytest.mark.asyncio
    async def test_no_retry_policy(self):
        attempts = 0

        with pytest.raises(ProviderError):
            async for attempt in NO_RETRY.retrying():
                with attempt:
                    attempts += 1
                    raise ProviderError("rate limited", retryable=True)

        assert attempts == 1
