"""
Bounded retry helper shared by the log fetcher and the delivery pipeline.

Each attempt returns an ``Ok`` or ``Failed`` result; the loop never lets an
exception escape, so callers only ever see the tagged outcome.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from ..models import Failed, Ok, Result

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class RetryState:
    """Attempt bookkeeping for one retry sequence."""

    max_attempts: int
    attempts_made: int = 0
    last_error: BaseException | None = None

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")

    @property
    def remaining(self) -> int:
        return self.max_attempts - self.attempts_made

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0

    def record_failure(self, error: BaseException | None) -> None:
        self.attempts_made += 1
        self.last_error = error


async def run_with_retry(
    attempt: Callable[[int], Awaitable[Result[T]]],
    state: RetryState,
    backoff: float,
    description: str,
) -> Result[T]:
    """Run ``attempt`` until it returns ``Ok`` or the budget in ``state`` is spent.

    Args:
        attempt: Coroutine function receiving the 1-based attempt number
        state: Retry bookkeeping, updated in place
        backoff: Seconds to wait between attempts
        description: Human readable label used in log messages

    Returns:
        The first ``Ok`` result, or ``Failed`` carrying the last error
    """
    while not state.exhausted:
        attempt_number = state.attempts_made + 1
        try:
            outcome = await attempt(attempt_number)
        except Exception as e:
            outcome = Failed(e)

        match outcome:
            case Ok():
                return outcome
            case Failed(error=error):
                state.record_failure(error)
                logger.warning(
                    f"{description} failed (attempt {attempt_number}/{state.max_attempts}): {error}"
                )

        if not state.exhausted and backoff > 0:
            await asyncio.sleep(backoff)

    return Failed(state.last_error, state.attempts_made)
