"""Exponential backoff for external calls.

The reasoning provider is expected to recover eventually, so its ceiling is
high (or unbounded). Record providers fail fast: one unreachable search API
must not stall a multi-claim job that still has other claims to process.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from patent_risk.config import Settings
from patent_risk.utils.logging import DIM, RESET, YELLOW, get_logger

log = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    initial_delay_ms: int = 1000
    max_delay_ms: int = 180_000
    max_attempts: int | None = None  # None = retry forever

    def delays(self) -> Iterator[int]:
        """Yield the wait (ms) before each retry: 1000, 2000, 4000, ... capped."""
        delay = self.initial_delay_ms
        retries = 0
        while self.max_attempts is None or retries < self.max_attempts - 1:
            yield delay
            delay = min(delay * 2, self.max_delay_ms)
            retries += 1


def reasoning_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        initial_delay_ms=settings.retry_initial_delay_ms,
        max_delay_ms=settings.retry_max_delay_ms,
        max_attempts=settings.reasoning_max_attempts or None,
    )


def record_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        initial_delay_ms=settings.retry_initial_delay_ms,
        max_delay_ms=settings.retry_max_delay_ms,
        max_attempts=max(1, settings.record_max_attempts),
    )


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str = "call",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Await `operation()` until it succeeds or the policy's attempts run out.

    The last underlying error is re-raised unchanged once the ceiling is hit.
    """
    delays = policy.delays()
    attempt = 0
    ceiling = "∞" if policy.max_attempts is None else str(policy.max_attempts)
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as e:
            delay_ms = next(delays, None)
            if delay_ms is None:
                log.error(f"  {label} failed after {attempt} attempt(s): {e}")
                raise
            log.warning(
                f"  {YELLOW}↻{RESET} {label} failed (attempt {attempt}/{ceiling}), "
                f"retrying in {delay_ms}ms {DIM}{e}{RESET}"
            )
            await sleep(delay_ms / 1000.0)
