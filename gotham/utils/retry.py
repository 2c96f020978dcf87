"""Retry helper for transient storage contention."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


async def execute_with_retry[T](*, operation_name: str, func: Callable[[], Awaitable[T]], retryable: Callable[[Exception], bool], max_attempts: int = 3, initial_backoff_ms: int = 100, max_backoff_ms: int = 2000, jitter: bool = True) -> T:
  """
  Execute an idempotent async operation, retrying only transient failures.

  Args:
    operation_name: Human-readable name for logging (e.g., "append_clip")
    func: Async callable to execute
    retryable: Predicate deciding whether an exception is transient
    max_attempts: Maximum number of attempts including the first one
    initial_backoff_ms: Starting backoff delay in milliseconds
    max_backoff_ms: Maximum backoff delay in milliseconds
    jitter: Add randomness to backoff to avoid synchronized retries

  Raises:
    The original exception when it is not retryable or attempts run out.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      result = await func()
    except Exception as exc:
      if not retryable(exc):
        raise
      if attempt >= max_attempts:
        logger.error("Operation failed after %d attempts: operation=%s error=%s", max_attempts, operation_name, exc)
        raise

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      if jitter:
        jitter_range = backoff_ms * 0.25
        backoff_ms += random.uniform(-jitter_range, jitter_range)
      logger.warning("Retrying operation after transient failure: operation=%s attempt=%d/%d backoff_ms=%.1f error=%s", operation_name, attempt, max_attempts, backoff_ms, exc)
      await asyncio.sleep(backoff_ms / 1000.0)
      continue

    if attempt > 1:
      logger.info("Operation succeeded after retry: operation=%s attempt=%d/%d", operation_name, attempt, max_attempts)
    return result
