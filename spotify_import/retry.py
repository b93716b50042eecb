"""Retry with exponential backoff, returning a tagged outcome instead of raising."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from spotify_import.exceptions import FatalError, TransientError
from spotify_import.utils.logger import get_logger


logger = get_logger()


class RetryStatus(Enum):
    SUCCESS = "success"
    TRANSIENT_EXHAUSTED = "transient_exhausted"
    FATAL = "fatal"


@dataclass(frozen=True)
class RetryOutcome:
    """Result of retry_call()."""
    status: RetryStatus
    attempts: int
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status == RetryStatus.SUCCESS


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before the next attempt after `attempt` failures (1-based)."""
    return base_delay * (2 ** (attempt - 1))


def retry_call(
    func: Callable[[], Any],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    sleep: Callable[[float], None] = time.sleep
) -> RetryOutcome:
    """
    Call func until it succeeds, fails fatally, or attempts run out.

    TransientError is retried after base_delay, 2*base_delay, ... (or the
    server's retry_after, if longer). FatalError stops immediately. Any other
    exception propagates to the caller.

    Args:
        func: Zero-argument callable to invoke
        max_attempts: Total number of attempts, including the first
        base_delay: Delay in seconds after the first failure
        sleep: Sleep function, replaceable in tests

    Returns:
        RetryOutcome tagged SUCCESS, TRANSIENT_EXHAUSTED or FATAL
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            value = func()
        except FatalError as e:
            return RetryOutcome(status=RetryStatus.FATAL, attempts=attempt, error=e)
        except TransientError as e:
            if attempt >= max_attempts:
                logger.warning(f"Giving up after {attempt} attempts: {e.cause}")
                return RetryOutcome(
                    status=RetryStatus.TRANSIENT_EXHAUSTED,
                    attempts=attempt,
                    error=e
                )
            delay = backoff_delay(attempt, base_delay)
            if e.retry_after is not None:
                delay = max(delay, e.retry_after)
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed ({e.cause}), retrying in {delay:.1f}s"
            )
            sleep(delay)
            continue

        return RetryOutcome(status=RetryStatus.SUCCESS, attempts=attempt, value=value)
