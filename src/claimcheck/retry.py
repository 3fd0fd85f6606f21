"""Retry with capped exponential backoff.

The delay before attempt ``n + 1`` is
``min(backoff_millis * backoff_multiplier ** (n - 1), max_backoff_millis)``.
After the last attempt the final exception is re-raised unchanged, so callers
see the real backend error rather than a retry wrapper.

Usage:
    policy = RetryPolicy.from_configuration(config)
    await policy.run(transport.send, message, description="send message")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from claimcheck.errors import ConfigurationError, InvalidPropertiesError, PayloadNotFoundError

if TYPE_CHECKING:
    from claimcheck.config import ClientConfiguration

logger = logging.getLogger(__name__)

T = TypeVar("T")

NON_RETRYABLE: tuple[type[BaseException], ...] = (
    ConfigurationError,
    InvalidPropertiesError,
    PayloadNotFoundError,
    asyncio.CancelledError,
)


@dataclass
class RetryPolicy:
    """Exponential backoff retry policy."""

    max_attempts: int = 3
    backoff_millis: int = 1000
    backoff_multiplier: float = 2.0
    max_backoff_millis: int = 30000
    non_retryable: tuple[type[BaseException], ...] = NON_RETRYABLE
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    @classmethod
    def from_configuration(cls, config: ClientConfiguration, **kwargs: Any) -> RetryPolicy:
        return cls(
            max_attempts=config.retry_max_attempts,
            backoff_millis=config.retry_backoff_millis,
            backoff_multiplier=config.retry_backoff_multiplier,
            max_backoff_millis=config.retry_max_backoff_millis,
            **kwargs,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        millis = self.backoff_millis * self.backoff_multiplier ** (attempt - 1)
        return min(millis, self.max_backoff_millis) / 1000.0

    async def run(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        description: str = "operation",
        **kwargs: Any,
    ) -> T:
        """Await ``operation(*args, **kwargs)``, retrying on failure."""
        attempts = max(1, self.max_attempts)
        attempt = 1
        while True:
            try:
                return await operation(*args, **kwargs)
            except self.non_retryable:
                raise
            except Exception as e:
                if attempt >= attempts:
                    logger.error(f"{description} failed after {attempt} attempts: {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt}/{attempts}), "
                    f"retrying in {delay:.3f}s: {e}"
                )
                await self.sleep(delay)
                attempt += 1
