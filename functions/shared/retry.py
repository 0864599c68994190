"""
Centralized retry logic with exponential backoff and jitter.

Features:
- Configurable retry counts and delays
- Exponential backoff with jitter (prevents thundering herd)
- Retryable exception filtering
- Structured logging for observability

The referral transaction harness retries the WHOLE read-decide-write
sequence through retry_call(), so every attempt sees fresh snapshots.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.3  # 0-30% jitter
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay with exponential backoff and jitter."""
    # Exponential backoff
    delay = min(config.base_delay * (config.exponential_base**attempt), config.max_delay)

    # Add jitter to prevent thundering herd
    jitter = random.uniform(0, delay * config.jitter_factor)

    return delay + jitter


def retry_call(func: Callable[..., T], *args, config: Optional[RetryConfig] = None, **kwargs) -> T:
    """
    Execute function with retry logic.

    Args:
        func: Function to call
        *args: Positional arguments for func
        config: Retry configuration
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful function call

    Raises:
        Last exception if all retries exhausted
    """
    config = config or RetryConfig()
    last_exception: Optional[Exception] = None
    name = getattr(func, "__name__", repr(func))

    for attempt in range(config.max_retries + 1):
        try:
            return func(*args, **kwargs)
        except config.retryable_exceptions as e:
            last_exception = e

            if attempt == config.max_retries:
                logger.error(
                    f"All {config.max_retries + 1} attempts failed for {name}",
                    extra={
                        "function": name,
                        "attempts": config.max_retries + 1,
                        "final_error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                raise

            delay = calculate_delay(attempt, config)

            logger.warning(
                f"Attempt {attempt + 1}/{config.max_retries + 1} failed for "
                f"{name}, retrying in {delay:.2f}s: {e}",
                extra={
                    "function": name,
                    "attempt": attempt + 1,
                    "delay_seconds": delay,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

            time.sleep(delay)

    # Should not reach here, but satisfy type checker
    raise last_exception or RuntimeError("Unexpected retry state")


# Pre-configured retry configs for different scenarios
TELEGRAM_RETRY_CONFIG = RetryConfig(
    max_retries=2,
    base_delay=0.5,
    max_delay=5.0,
    jitter_factor=0.3,
)

DYNAMODB_RETRY_CONFIG = RetryConfig(
    max_retries=3,
    base_delay=0.1,
    max_delay=2.0,
    jitter_factor=0.2,
)
