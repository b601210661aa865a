"""
vsecm_sdk.backoff

Bounded retry with optional exponential delay and jitter.

Responsibilities:
- Run an async operation up to `max_retries + 1` times.
- Sleep `delay * (2**attempt if exponential else 1)` plus jitter in `[0, delay)` between
  attempts, clamped to `max_wait`.
- Re-raise the last failure unchanged once attempts are exhausted.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TypeVar

from vsecm_sdk.observability.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

DEFAULT_MAX_RETRIES = 5
DEFAULT_DELAY = 1.0
DEFAULT_MAX_WAIT = 10.0


@dataclass(frozen=True, slots=True)
class Strategy:
    """
    Durations are in seconds. `None` means "use the default".
    """

    max_retries: int | None = None
    delay: float | None = None
    exponential: bool = False
    max_wait: float | None = None

    def with_defaults(self) -> Strategy:
        s = self
        if s.max_retries is None or s.max_retries < 0:
            s = replace(s, max_retries=DEFAULT_MAX_RETRIES)
        if s.delay is None or s.delay < 0:
            s = replace(s, delay=DEFAULT_DELAY)
        if s.exponential and s.max_wait is None:
            s = replace(s, max_wait=DEFAULT_MAX_WAIT)
        return s

    def delay_for(self, attempt: int, *, jitter: float) -> float:
        # Expects a strategy that already went through `with_defaults()`.
        assert self.delay is not None
        multiplier = 2**attempt if self.exponential else 1
        delay = self.delay * multiplier + jitter
        if self.max_wait is not None and delay > self.max_wait:
            delay = self.max_wait
        return delay


async def retry(
    scope: str,
    operation: Callable[[], Awaitable[T]],
    strategy: Strategy | None = None,
    *,
    fatal: tuple[type[Exception], ...] = (),
    sleep: Sleep = asyncio.sleep,
    rng: random.Random | None = None,
) -> T:
    """
    The operation must be safe to call repeatedly; side effects are not deduplicated.
    Exceptions listed in `fatal` propagate on first sight; cancellation is never retried.
    """

    s = (strategy or Strategy()).with_defaults()
    assert s.max_retries is not None and s.delay is not None
    rand = rng or random.Random()
    attempts = s.max_retries + 1

    for attempt in range(attempts):
        try:
            return await operation()
        except fatal:
            raise
        except Exception as e:
            if attempt == attempts - 1:
                log.warning(
                    "retry_exhausted",
                    scope=scope,
                    attempts=attempts,
                    error=str(e),
                )
                raise

            delay = s.delay_for(attempt, jitter=rand.random() * s.delay)
            log.info(
                "retry_scheduled",
                scope=scope,
                attempt=attempt + 1,
                of=attempts,
                delay_s=round(delay, 3),
                error=str(e),
            )
            await sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover


# --- Module Notes -----------------------------------------------------------
# `sleep` and `rng` are injectable so callers (and tests) control time and jitter.
