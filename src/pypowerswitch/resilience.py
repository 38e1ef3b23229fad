"""Retry policies for PowerSwitch requests (exponential backoff, rate limiting).

Neither policy is active unless passed to the client. Without them every
request is attempted once and 429 responses are reported as failures.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from http import HTTPStatus


_LOGGER = logging.getLogger(__name__)


@dataclass
class ExponentialBackoffConfig:
    """Configuration for exponential backoff.

    Attributes:
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any single delay, in seconds.
        max_retries: Total number of attempts, including the first one.
        exponential_base: Growth factor between attempts.
        jitter: Randomize delays ("full jitter").
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_retries: int = 3
    exponential_base: float = 2.0
    jitter: bool = True


class ExponentialBackoff:
    """Delay calculator for retrying transient network failures.

    Example:
        backoff = ExponentialBackoff(base_delay=0.5, max_retries=4)

        async with PowerSwitchClient(backoff=backoff) as client:
            result = await client.request_gateways()
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_retries: int = 3,
        exponential_base: float = 2.0,
        *,
        jitter: bool = True,
    ) -> None:
        if max_retries < 1:
            msg = "max_retries must be at least 1"
            raise ValueError(msg)

        self.config = ExponentialBackoffConfig(
            base_delay=base_delay,
            max_delay=max_delay,
            max_retries=max_retries,
            exponential_base=exponential_base,
            jitter=jitter,
        )

    @property
    def max_retries(self) -> int:
        """Get the total number of attempts."""
        return self.config.max_retries

    def calculate_delay(self, attempt: int) -> float:
        """Calculate the delay after a failed attempt.

        Args:
            attempt: Failed attempt number (0-indexed).

        Returns:
            Delay in seconds before the next attempt.
        """
        delay = min(self.config.base_delay * (self.config.exponential_base**attempt), self.config.max_delay)
        if self.config.jitter:
            delay = random.uniform(0, delay)  # noqa: S311
        return delay


@dataclass
class RateLimitConfig:
    """Configuration for 429 handling.

    Attributes:
        respect_retry_after: Honour the Retry-After header.
        default_retry_delay: Delay when the header is absent or unusable.
        max_retry_delay: Upper bound for any single delay.
    """

    respect_retry_after: bool = True
    default_retry_delay: float = 5.0
    max_retry_delay: float = 60.0


class RateLimiter:
    """Computes how long to wait after an HTTP 429 response.

    Retry-After may be given either in seconds or as an HTTP date.
    """

    def __init__(
        self,
        *,
        respect_retry_after: bool = True,
        default_retry_delay: float = 5.0,
        max_retry_delay: float = 60.0,
    ) -> None:
        self.config = RateLimitConfig(
            respect_retry_after=respect_retry_after,
            default_retry_delay=default_retry_delay,
            max_retry_delay=max_retry_delay,
        )

    @staticmethod
    def is_rate_limited(status_code: int) -> bool:
        return status_code == HTTPStatus.TOO_MANY_REQUESTS

    def get_retry_delay(self, response_status: int, retry_after_header: str | None = None) -> float:
        """Calculate the retry delay for a response.

        Args:
            response_status: HTTP status code.
            retry_after_header: Value of the Retry-After header, if present.

        Returns:
            Delay in seconds, 0.0 for responses that are not rate limited.
        """
        if not self.is_rate_limited(response_status):
            return 0.0

        delay = self.config.default_retry_delay
        if self.config.respect_retry_after and retry_after_header:
            parsed = self._parse_retry_after(retry_after_header)
            if parsed is not None:
                delay = parsed

        return max(0.0, min(delay, self.config.max_retry_delay))

    @staticmethod
    def _parse_retry_after(value: str) -> float | None:
        try:
            return float(value)
        except ValueError:
            pass

        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            _LOGGER.debug("Could not parse Retry-After header %r", value)
            return None

        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=UTC)
        return (retry_at - datetime.now(UTC)).total_seconds()
