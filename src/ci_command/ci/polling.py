"""Bounded retry-with-delay primitive for GitHub polling loops.

Run discovery and run monitoring both repeat a query at a fixed
interval until the answer satisfies them. The loop here bounds that
repetition three ways:

- a deadline measured from the first attempt
- an optional maximum number of attempts
- a cap on consecutive failed queries

Failed queries of the retryable exception types are logged and retried
on the next tick. Any other exception propagates.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Optional,
    Tuple,
    Type,
    TypeVar,
)

from src.ci_command.errors import CICommandError
from src.ci_command.github.client import GitHubAPIError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class PollPolicy:
    """How often and for how long to poll.

    Attributes:
        interval: Seconds to sleep between attempts.
        timeout: Seconds after the first attempt at which polling stops.
        max_consecutive_failures: Failed attempts in a row tolerated
            before giving up.
        max_attempts: Optional cap on the total number of attempts.
    """

    interval: float
    timeout: float
    max_consecutive_failures: int = 5
    max_attempts: Optional[int] = None

    def __post_init__(self) -> None:
        if self.interval < 0:
            raise ValueError("interval cannot be negative")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


class PollTimeout(CICommandError):
    """Raised when a polling loop gives up.

    Internal to the polling loops: the dispatcher and monitor turn it
    into DispatchError, DispatchTimeout or MonitorTimeout.

    Attributes:
        reason: "deadline", "attempts" or "failures".
        attempts: Number of attempts made.
        elapsed: Seconds since the first attempt.
        last_error: The most recent failed query, if any.
    """

    def __init__(
        self,
        reason: str,
        attempts: int,
        elapsed: float,
        last_error: Optional[BaseException] = None,
    ):
        self.reason = reason
        self.attempts = attempts
        self.elapsed = elapsed
        self.last_error = last_error
        super().__init__(
            f"Polling stopped ({reason}) after {attempts} attempts in {elapsed:.1f}s"
        )


async def poll(
    fetch: Callable[[], Awaitable[T]],
    policy: PollPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (GitHubAPIError,),
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
    description: str = "poll",
) -> AsyncIterator[T]:
    """Yield the result of every successful fetch until the caller stops.

    The caller ends polling by breaking out of the loop. The generator
    sleeps `policy.interval` between attempts and raises PollTimeout
    once any bound in the policy is exceeded.
    """
    started = clock()
    attempts = 0
    failures = 0
    last_error: Optional[BaseException] = None

    while True:
        attempts += 1
        try:
            result = await fetch()
        except retry_on as e:
            failures += 1
            last_error = e
            logger.warning(
                "Polling query failed",
                extra={
                    "poll": description,
                    "attempt": attempts,
                    "consecutive_failures": failures,
                    "error": str(e),
                },
            )
            if failures >= policy.max_consecutive_failures:
                raise PollTimeout("failures", attempts, clock() - started, e) from e
        else:
            failures = 0
            yield result

        elapsed = clock() - started
        if elapsed >= policy.timeout:
            raise PollTimeout("deadline", attempts, elapsed, last_error)
        if policy.max_attempts is not None and attempts >= policy.max_attempts:
            raise PollTimeout("attempts", attempts, elapsed, last_error)

        await sleep(policy.interval)


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    policy: PollPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (GitHubAPIError,),
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
    description: str = "poll",
) -> T:
    """Poll until `is_done` accepts a result, and return that result.

    Raises:
        PollTimeout: If the policy's bounds are exceeded first.
    """
    async with aclosing(
        poll(fetch, policy, retry_on=retry_on, sleep=sleep, clock=clock, description=description)
    ) as results:
        async for result in results:
            if is_done(result):
                return result
    # poll() only ends by raising
    raise AssertionError("unreachable")
