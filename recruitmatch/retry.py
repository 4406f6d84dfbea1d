"""
Retry/backoff state machine for one batch of generative-text calls.

    ATTEMPTING -> SUCCESS
               -> RATE_LIMITED      -> WAITING -> ATTEMPTING
               -> TRANSIENT_FAILURE -> WAITING -> ATTEMPTING
               -> EXHAUSTED

``next_step`` is the pure transition; ``RetryController`` drives it with an
injected sleep so the whole loop can be exercised without real waits.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

_RETRY_DELAY_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)s\s*$")


class BatchState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_FAILURE = "transient_failure"
    WAITING = "waiting"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    default_rate_limit_delay: float = 60.0
    backoff_base: float = 2.0

    def backoff_delay(self, attempt: int) -> float:
        """Exponential wait after failed attempt ``attempt`` (zero-indexed)."""
        return self.backoff_base ** (attempt + 1)


@dataclass(frozen=True)
class AttemptOutcome(Generic[T]):
    """What one attempt produced, as seen by the state machine."""
    state: BatchState
    value: Optional[T] = None
    retry_delay: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "AttemptOutcome[T]":
        return cls(BatchState.SUCCESS, value=value)

    @classmethod
    def rate_limited(cls, retry_delay: Optional[float] = None, error: Optional[str] = None) -> "AttemptOutcome[T]":
        return cls(BatchState.RATE_LIMITED, retry_delay=retry_delay, error=error)

    @classmethod
    def failure(cls, error: str) -> "AttemptOutcome[T]":
        return cls(BatchState.TRANSIENT_FAILURE, error=error)


@dataclass(frozen=True)
class RetryStep:
    state: BatchState
    delay: float = 0.0


@dataclass
class RetryResult(Generic[T]):
    state: BatchState
    value: Optional[T] = None
    attempts: int = 0
    waits: List[float] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is BatchState.SUCCESS


def parse_retry_delay(error_text: Any) -> Optional[float]:
    """
    Read the server hint at ``error.details[].metadata.retryDelay`` (``"12s"``).

    Returns the delay in seconds, or None when absent or unparsable.
    """
    if isinstance(error_text, (str, bytes)):
        try:
            payload = json.loads(error_text)
        except ValueError:
            return None
    else:
        payload = error_text

    try:
        details = payload["error"]["details"]
    except (KeyError, TypeError):
        return None
    if not isinstance(details, list):
        return None

    for detail in details:
        metadata = detail.get("metadata") if isinstance(detail, dict) else None
        raw = metadata.get("retryDelay") if isinstance(metadata, dict) else None
        if not isinstance(raw, str):
            continue
        match = _RETRY_DELAY_RE.match(raw)
        if match:
            return float(match.group(1))
    return None


def next_step(attempt: int, outcome: AttemptOutcome[Any], policy: RetryPolicy) -> RetryStep:
    """Transition after attempt ``attempt`` (zero-indexed) produced ``outcome``."""
    if outcome.state is BatchState.SUCCESS:
        return RetryStep(BatchState.SUCCESS)
    if attempt >= policy.max_attempts - 1:
        return RetryStep(BatchState.EXHAUSTED)
    if outcome.state is BatchState.RATE_LIMITED:
        delay = outcome.retry_delay
        if delay is None:
            delay = policy.default_rate_limit_delay
        return RetryStep(BatchState.RATE_LIMITED, delay)
    return RetryStep(BatchState.TRANSIENT_FAILURE, policy.backoff_delay(attempt))


class RetryController:
    """Runs an attempt function until it succeeds or the policy is exhausted."""

    def __init__(self, policy: Optional[RetryPolicy] = None, sleep: Sleep = asyncio.sleep):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def run(
        self,
        attempt_fn: Callable[[int], Awaitable[AttemptOutcome[T]]],
        label: str = "batch",
    ) -> RetryResult[T]:
        result: RetryResult[T] = RetryResult(state=BatchState.ATTEMPTING)

        for attempt in range(self.policy.max_attempts):
            result.attempts = attempt + 1
            try:
                outcome = await attempt_fn(attempt)
            except Exception as exc:
                logger.warning("%s attempt %d raised: %s", label, attempt + 1, exc)
                outcome = AttemptOutcome.failure(str(exc) or exc.__class__.__name__)

            if outcome.error:
                result.errors.append(outcome.error)

            step = next_step(attempt, outcome, self.policy)
            result.state = step.state

            if step.state is BatchState.SUCCESS:
                result.value = outcome.value
                return result
            if step.state is BatchState.EXHAUSTED:
                logger.error("%s exhausted after %d attempts", label, attempt + 1)
                return result

            if step.state is BatchState.RATE_LIMITED:
                logger.info("%s rate limited, waiting %.1fs", label, step.delay)
            else:
                logger.info("%s attempt %d failed, backing off %.1fs", label, attempt + 1, step.delay)

            result.state = BatchState.WAITING
            result.waits.append(step.delay)
            await self._sleep(step.delay)
            result.state = BatchState.ATTEMPTING

        result.state = BatchState.EXHAUSTED
        return result
