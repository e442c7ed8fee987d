"""
Retry with exponential backoff and jitter.

All delays are in milliseconds. Each call to retry_with_backoff() is
independent: no shared counters, no global limiter. Jitter exists so that
concurrent retry sequences don't line up into a thundering herd.
"""

import asyncio
import inspect
import logging
import random
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from noteflow.errors import ErrorClassification, classify, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.25

RETRY_CONFIG_KEYS = ("max_attempts", "initial_delay", "backoff_multiplier", "max_delay", "jitter")


def _always_retryable(error: BaseException) -> bool:
    return True


class RetryPolicy(BaseModel):
    """Per-call retry configuration."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, description="Total attempts, first one included")
    initial_delay: float = Field(default=1000, ge=0, description="Delay before the 2nd attempt (ms)")
    backoff_multiplier: float = Field(default=2, ge=1)
    max_delay: float = Field(default=10000, ge=0, description="Cap on any single delay (ms)")
    jitter: bool = True
    is_retryable: Callable[[BaseException], bool] = _always_retryable
    on_retry: Callable[[BaseException, int], Any] | None = None

    @model_validator(mode="after")
    def _check_cap(self) -> "RetryPolicy":
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        return self

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None, **overrides: Any) -> "RetryPolicy":
        """
        Build a policy from the [retry] table of a loaded config.

        Missing keys keep their defaults. Keyword overrides win over config.
        """
        if config is None:
            from noteflow.config import load_config
            config = load_config()

        retry_config = config.get("retry") or {}
        values = {
            key: retry_config[key]
            for key in RETRY_CONFIG_KEYS
            if retry_config.get(key) is not None
        }
        values.update(overrides)
        return cls(**values)


def classifier_policy(policy: RetryPolicy | None = None, **overrides: Any) -> RetryPolicy:
    """Return a copy of `policy` whose retryability comes from the error classifier."""
    base = policy or RetryPolicy()
    return base.model_copy(update={"is_retryable": is_retryable, **overrides})


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Un-jittered delay (ms) that follows failed attempt number `attempt`."""
    delay = min(policy.initial_delay, policy.max_delay)
    for _ in range(attempt - 1):
        grown = min(delay * policy.backoff_multiplier, policy.max_delay)
        if grown == delay:
            # Capped, or not growing at all
            break
        delay = grown
    return delay


def calculate_delay(base_delay: float, jitter: bool) -> float:
    """Apply +/-25% random jitter to a delay (ms). Never negative."""
    if not jitter:
        return base_delay

    offset = random.uniform(-JITTER_RATIO, JITTER_RATIO) * base_delay
    return max(0.0, base_delay + offset)


async def retry_with_backoff(
    work: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run `work` until it succeeds, fails with a non-retryable error, or the
    attempt budget is spent.

    Raises the last error seen; earlier failures are only visible through
    policy.on_retry. `sleep` takes seconds and is injectable for tests.
    """
    policy = policy or RetryPolicy()
    delay = policy.initial_delay
    attempt = 1

    while True:
        try:
            return await work()
        except Exception as error:
            classification = classify(error)
            # Error text can echo credentials back; it stays at DEBUG
            logger.debug(f"Attempt {attempt} error detail: {classification.detail}")

            if attempt >= policy.max_attempts:
                logger.error(
                    f"Giving up after {attempt} attempt(s): {_describe(classification)}"
                )
                raise

            if not policy.is_retryable(error):
                logger.error(
                    f"Non-retryable error on attempt {attempt}: {_describe(classification)}"
                )
                raise

            actual_delay = min(calculate_delay(delay, policy.jitter), policy.max_delay)

            if policy.on_retry is not None:
                result = policy.on_retry(error, attempt)
                if inspect.isawaitable(result):
                    await result

            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} failed "
                f"({_describe(classification)}), retrying in {actual_delay:.0f}ms"
            )

            await sleep(actual_delay / 1000)

            delay = min(delay * policy.backoff_multiplier, policy.max_delay)
            attempt += 1


def _describe(classification: ErrorClassification) -> str:
    if classification.http_status is None:
        return classification.kind.value
    return f"{classification.kind.value}, status {classification.http_status}"
