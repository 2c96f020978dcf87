"""Token-bucket admission control shared by every provider call."""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from gotham.ai.errors import RateLimitExceeded, is_throttle_error
from gotham.config import Settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class UnknownProviderError(KeyError):
  """Raised when no bucket exists for the requested provider."""

  def __init__(self, provider: str) -> None:
    super().__init__(provider)
    self.provider = provider

  def __str__(self) -> str:
    return f"No rate limit bucket configured for provider '{self.provider}'."


@dataclass(frozen=True)
class BucketLimits:
  tokens_per_minute: int
  tokens_per_request: int
  max_concurrent_requests: int


@dataclass
class Bucket:
  """Mutable throughput state for one provider."""

  provider: str
  tokens: int
  max_tokens: int
  tokens_per_request: int
  max_concurrent_requests: int
  current_requests: int
  last_refill: float


class RateLimiter:
  """Admit provider calls under a per-minute token budget and a concurrency cap.

  Every call reserves a fixed token cost up front. Denied callers back off
  exponentially and give up after ``max_attempts`` with ``RateLimitExceeded``.
  The limiter is unaware of sessions and storyboards.
  """

  def __init__(self, limits: Mapping[str, BucketLimits], *, base_delay_seconds: float = 1.0, max_delay_seconds: float = 30.0, max_attempts: int = 10, jitter: bool = True, clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep) -> None:
    self._clock = clock
    self._sleep = sleep
    self._base_delay = base_delay_seconds
    self._max_delay = max_delay_seconds
    self._max_attempts = max_attempts
    self._jitter = jitter
    now = clock()
    self._buckets: dict[str, Bucket] = {
      provider: Bucket(
        provider=provider,
        tokens=limit.tokens_per_minute,
        max_tokens=limit.tokens_per_minute,
        tokens_per_request=limit.tokens_per_request,
        max_concurrent_requests=limit.max_concurrent_requests,
        current_requests=0,
        last_refill=now,
      )
      for provider, limit in limits.items()
    }

  @classmethod
  def from_settings(cls, settings: Settings) -> RateLimiter:
    limits = {
      name: BucketLimits(tokens_per_minute=provider.tokens_per_minute, tokens_per_request=provider.tokens_per_request, max_concurrent_requests=provider.max_concurrent_requests)
      for name, provider in settings.providers.items()
    }
    return cls(limits, base_delay_seconds=settings.limiter_base_delay_seconds, max_delay_seconds=settings.limiter_max_delay_seconds, max_attempts=settings.limiter_max_attempts)

  @property
  def providers(self) -> list[str]:
    return list(self._buckets)

  def _bucket(self, provider: str) -> Bucket:
    bucket = self._buckets.get(provider)
    if bucket is None:
      raise UnknownProviderError(provider)
    return bucket

  def _refill(self, bucket: Bucket) -> None:
    now = self._clock()
    tokens_to_add = math.floor((now - bucket.last_refill) * bucket.max_tokens / 60.0)
    # The timestamp only moves when whole tokens were added.
    if tokens_to_add > 0:
      bucket.tokens = min(bucket.max_tokens, bucket.tokens + tokens_to_add)
      bucket.last_refill = now

  def _try_admit(self, bucket: Bucket) -> bool:
    self._refill(bucket)
    if bucket.current_requests >= bucket.max_concurrent_requests:
      return False
    if bucket.tokens < bucket.tokens_per_request:
      return False
    bucket.current_requests += 1
    bucket.tokens -= bucket.tokens_per_request
    return True

  def _delay_for(self, attempt: int) -> float:
    delay = min(self._base_delay * (2**attempt), self._max_delay)
    if self._jitter:
      delay += random.uniform(0, delay * 0.1)
    return delay

  async def acquire(self, provider: str) -> None:
    """Wait until the provider's bucket admits one request."""
    bucket = self._bucket(provider)
    for attempt in range(self._max_attempts):
      if self._try_admit(bucket):
        return
      delay = self._delay_for(attempt)
      logger.debug("Rate limit deferral for %s: attempt=%d/%d tokens=%d active=%d delay=%.2fs", provider, attempt + 1, self._max_attempts, bucket.tokens, bucket.current_requests, delay)
      await self._sleep(delay)

    # Last look after the final sleep.
    if self._try_admit(bucket):
      return
    logger.warning("Rate limit exhausted for %s after %d attempts", provider, self._max_attempts)
    raise RateLimitExceeded(provider, self._max_attempts)

  def release(self, provider: str) -> None:
    bucket = self._bucket(provider)
    bucket.current_requests = max(0, bucket.current_requests - 1)

  def penalize(self, provider: str) -> None:
    """Halve the remaining tokens after the provider itself reported throttling."""
    bucket = self._bucket(provider)
    bucket.tokens = bucket.tokens // 2
    logger.warning("Provider %s throttled; bucket reduced to %d tokens", provider, bucket.tokens)

  async def execute[T](self, task: Callable[[], Awaitable[T]], provider: str) -> T:
    """Run ``task`` once admitted; the concurrency slot is always released."""
    await self.acquire(provider)
    try:
      return await task()
    except Exception as exc:
      if is_throttle_error(exc):
        self.penalize(provider)
      raise
    finally:
      self.release(provider)

  def snapshot(self, provider: str) -> dict[str, Any]:
    bucket = self._bucket(provider)
    self._refill(bucket)
    payload = asdict(bucket)
    payload.pop("last_refill")
    return payload

  def snapshots(self) -> list[dict[str, Any]]:
    return [self.snapshot(provider) for provider in self._buckets]
