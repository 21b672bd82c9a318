#!/usr/bin/env python3
"""Tests for the bounded retry helper."""

from unittest.mock import AsyncMock, patch

import pytest

from ethda_relayer.models import Failed, Ok
from ethda_relayer.utils.retry import RetryState, run_with_retry


def scripted(*outcomes):
    """Attempt function returning (or raising) each outcome in turn, recording attempt numbers."""
    seen = []
    pending = list(outcomes)

    async def attempt(number):
        seen.append(number)
        outcome = pending.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return attempt, seen


class TestRetryState:

    def test_fresh_state(self):
        state = RetryState(3)
        assert state.remaining == 3
        assert not state.exhausted

    def test_record_failure(self):
        state = RetryState(2)
        error = RuntimeError("x")
        state.record_failure(error)
        assert state.attempts_made == 1
        assert state.last_error is error
        state.record_failure(None)
        assert state.exhausted

    @pytest.mark.parametrize("attempts", [0, -1])
    def test_requires_positive_budget(self, attempts):
        with pytest.raises(ValueError):
            RetryState(attempts)


class TestRunWithRetry:

    @pytest.mark.asyncio
    async def test_first_ok_is_returned(self):
        attempt, seen = scripted(Ok(1))
        assert await run_with_retry(attempt, RetryState(5), 0, "op") == Ok(1)
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_failures_and_exceptions_are_retried(self):
        error = ValueError("bad")
        attempt, seen = scripted(Failed(error), ConnectionError("reset"), Ok("done"))
        state = RetryState(5)

        assert await run_with_retry(attempt, state, 0, "op") == Ok("done")
        assert seen == [1, 2, 3]
        assert state.attempts_made == 2

    @pytest.mark.asyncio
    async def test_exhaustion_reports_last_error(self):
        last = TimeoutError("third")
        attempt, seen = scripted(Failed(ValueError("first")), RuntimeError("second"), last)

        outcome = await run_with_retry(attempt, RetryState(3), 0, "op")

        assert outcome == Failed(last, 3)
        assert seen == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_state_budget_is_shared(self):
        """A partially used state only grants its remaining attempts."""
        state = RetryState(3)
        state.record_failure(RuntimeError("earlier"))
        attempt, seen = scripted(Failed(None), Failed(None))

        outcome = await run_with_retry(attempt, state, 0, "op")

        assert isinstance(outcome, Failed)
        assert seen == [2, 3]

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts_only(self):
        attempt, _ = scripted(Failed(None), Failed(None), Failed(None))

        with patch("ethda_relayer.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await run_with_retry(attempt, RetryState(3), 1.5, "op")

        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.5)

    @pytest.mark.asyncio
    async def test_zero_backoff_never_sleeps(self):
        attempt, _ = scripted(Failed(None), Ok(0))

        with patch("ethda_relayer.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await run_with_retry(attempt, RetryState(2), 0, "op")

        sleep.assert_not_awaited()
