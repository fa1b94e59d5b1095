"""
Retry Policy

A small reusable policy object for retrying network calls with exponential backoff.
Both the feed client and the image fetcher are parameterized with a RetryPolicy instead
of carrying their own retry loops.

The delay before retry n (1-based) is base_delay * factor ** (n - 1), so the defaults
wait 0.5s, then 1s, then 2s, ... Only exceptions accepted by the 'retryable' predicate
are retried; anything else propagates on the spot.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import requests

from potdwall.config import PotdConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(error: BaseException) -> bool:
    """
    Default retry predicate. Connection problems, timeouts, truncated bodies and 5xx
    responses are worth another attempt. 4xx responses and everything that is not a
    requests error are permanent.
    """

    if isinstance(error, requests.HTTPError):
        response = error.response
        return response is not None and response.status_code >= 500

    return isinstance(
        error,
        (
            requests.ConnectionError,
            requests.Timeout,
            requests.exceptions.ChunkedEncodingError,
        ),
    )


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    factor: float = 2.0
    retryable: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    @classmethod
    def from_config(cls, config: PotdConfig, **kwargs) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_retries,
            base_delay=config.backoff_base,
            factor=config.backoff_factor,
            **kwargs,
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""

        return self.base_delay * self.factor ** (attempt - 1)

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Call func until it returns, a non-retryable exception is raised, or max_attempts
        calls have failed. The last exception is re-raised unchanged so callers can wrap it
        in their own error type.
        """

        attempt = 1
        while True:
            try:
                return func(*args, **kwargs)

            except Exception as error:
                if not self.retryable(error) or attempt >= self.max_attempts:
                    raise

                delay = self.delay(attempt)
                logger.warning(
                    "Attempt %d/%d of %s failed: %s. Retrying in %.1fs",
                    attempt,
                    self.max_attempts,
                    getattr(func, "__name__", repr(func)),
                    error,
                    delay,
                )
                self.sleep(delay)
                attempt += 1
