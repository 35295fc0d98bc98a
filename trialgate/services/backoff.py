"""Bounded exponential backoff, independent of any particular upstream."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from trialgate.errors import TransientUpstreamError, UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (TransientUpstreamError, asyncio.TimeoutError))


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Retry an async operation up to max_attempts times on transient errors.

    No delay before the first attempt; attempt i (i >= 1) waits
    base_delay_s * 2**(i-1), so three attempts wait 0, 1, 2 units.
    Each attempt is bounded by attempt_timeout_s; a timeout is transient.
    """

    max_attempts: int = 3
    base_delay_s: float = 1.0
    attempt_timeout_s: float | None = 30.0
    classifier: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_before(self, attempt: int) -> float:
        if attempt <= 0:
            return 0.0
        return self.base_delay_s * (2 ** (attempt - 1))

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "upstream") -> T:
        last_error: BaseException | None = None
        for attempt in range(self.max_attempts):
            delay = self.delay_before(attempt)
            if delay > 0:
                logger.warning(
                    "%s temporary error (%s). Retrying in %.1f seconds (attempt %d/%d)",
                    label, last_error, delay, attempt + 1, self.max_attempts,
                )
                await self.sleep(delay)
            try:
                if self.attempt_timeout_s:
                    return await asyncio.wait_for(operation(), timeout=self.attempt_timeout_s)
                return await operation()
            except Exception as exc:
                if not self.classifier(exc):
                    raise
                last_error = exc
        logger.error(
            "%s unavailable after %d attempts, last error: %r",
            label, self.max_attempts, last_error,
        )
        raise UpstreamUnavailable(self.max_attempts, last_error) from last_error
