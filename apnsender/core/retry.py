"""
Centralized retry/backoff utilities.

Used above the sender's own attempt loop, to retry whole sends that were
rate limited or hit a transport error.
"""

import asyncio
import logging
import random
from typing import Callable, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Sequence[type[Exception]] = (Exception,),
    ):
        """
        Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (including first)
            base_delay: Initial delay between retries in seconds
            max_delay: Maximum delay between retries
            exponential_base: Base for exponential backoff
            jitter: Whether to add random jitter to delays
            retryable_exceptions: Exception types that trigger retry
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = tuple(retryable_exceptions)


RETRY_STANDARD = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
)


def calculate_delay(
    attempt: int,
    config: RetryConfig,
) -> float:
    """
    Calculate delay for a given attempt number.

    Args:
        attempt: Zero-based attempt number
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = min(
        config.base_delay * (config.exponential_base ** attempt),
        config.max_delay
    )

    if config.jitter:
        # ±25% jitter so throttled senders don't retry in lockstep
        jitter_range = delay * 0.25
        delay += random.uniform(-jitter_range, jitter_range)

    return max(0, delay)


async def retry_async(
    func: Callable[..., T],
    *args,
    config: RetryConfig = RETRY_STANDARD,
    operation_name: Optional[str] = None,
    retry_if_result: Optional[Callable[[T], bool]] = None,
    **kwargs,
) -> T:
    """
    Execute an async function with retry logic.

    A call is retried when it raises one of config.retryable_exceptions, or
    when retry_if_result returns True for its result. After the last attempt
    the result is returned as-is, or the exception re-raised.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        config: Retry configuration
        operation_name: Name for logging (defaults to func name)
        retry_if_result: Predicate marking a returned value as retryable
        **kwargs: Keyword arguments for func

    Returns:
        Result of the last function call

    Example:
        response = await retry_async(
            sender.send,
            notification,
            device_token,
            config=RETRY_APNS,
            retry_if_result=lambda r: r.status == DeliveryStatus.RATE_LIMITED,
        )
    """
    op_name = operation_name or getattr(func, '__name__', 'operation')

    for attempt in range(config.max_attempts):
        is_last = attempt == config.max_attempts - 1

        try:
            result = await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if is_last:
                logger.error(
                    f"{op_name} failed after {config.max_attempts} attempts: {e}",
                    extra={
                        "event_type": "retry_exhausted",
                        "operation": op_name,
                        "attempts": config.max_attempts,
                        "final_error": str(e),
                        "error_type": type(e).__name__,
                    }
                )
                raise
            reason = f"{type(e).__name__}: {e}"
        else:
            if retry_if_result is None or not retry_if_result(result):
                return result
            if is_last:
                logger.error(
                    f"{op_name} still unsuccessful after {config.max_attempts} attempts",
                    extra={
                        "event_type": "retry_exhausted",
                        "operation": op_name,
                        "attempts": config.max_attempts,
                    }
                )
                return result
            reason = "retryable result"

        delay = calculate_delay(attempt, config)
        logger.warning(
            f"{op_name} failed (attempt {attempt + 1}/{config.max_attempts}), "
            f"retrying in {delay:.1f}s: {reason}",
            extra={
                "event_type": "retry_attempt",
                "operation": op_name,
                "attempt": attempt + 1,
                "max_attempts": config.max_attempts,
                "delay_seconds": delay,
                "error": reason,
            }
        )
        await asyncio.sleep(delay)

    raise RuntimeError(f"{op_name} made no attempts")
