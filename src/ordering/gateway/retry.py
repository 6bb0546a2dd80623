"""Bounded retry with exponential backoff for gateway calls.

Only GatewayUnavailable is retried. Once the attempts are used up the last
GatewayUnavailable propagates unchanged, so callers fail closed without
touching the order.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from ordering.gateway.port import GatewayUnavailable
from ordering.utils.settings import Settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    times: int = 3
    backoff_initial: float = 0.2
    backoff_factor: float = 2.0
    backoff_max: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            times=settings.gateway_retry_attempts,
            backoff_initial=settings.gateway_backoff_initial,
            backoff_max=settings.gateway_backoff_max,
        )

    def delays(self):
        """Delay before each retry: initial, initial*factor, ... capped at max."""
        delay = self.backoff_initial
        for _ in range(self.times - 1):
            yield min(delay, self.backoff_max)
            delay *= self.backoff_factor


def call_with_retry(
    operation: Callable[..., Any],
    *args: Any,
    policy: RetryPolicy,
    sleep: Callable[[float], None] | None = None,
    **kwargs: Any,
) -> Any:
    sleep = sleep or time.sleep
    delays = policy.delays()
    attempt = 1
    while True:
        try:
            return operation(*args, **kwargs)
        except GatewayUnavailable as exc:
            delay = next(delays, None)
            if delay is None:
                logger.error(
                    "Payment gateway unavailable, giving up",
                    operation=getattr(operation, "__name__", str(operation)),
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            logger.warning(
                "Payment gateway unavailable, retrying",
                operation=getattr(operation, "__name__", str(operation)),
                attempt=attempt,
                retry_in=delay,
                error=str(exc),
            )
            sleep(delay)
            attempt += 1
