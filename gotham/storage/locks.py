"""Cooperative per-storyboard locks for read-modify-write sequences."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class LockTimeoutError(TimeoutError):
  """Raised when a storyboard lock is not released within the wait budget."""

  def __init__(self, storyboard_id: str, waited_seconds: float) -> None:
    super().__init__(f"Timed out after {waited_seconds:.2f}s waiting for storyboard {storyboard_id}")
    self.storyboard_id = storyboard_id


class StoryboardLocks:
  """In-process lock flags keyed by storyboard id.

  Each held flag carries a release event. Waiters sleep on that event and
  wake as soon as the holder releases, so a contended storyboard hands over
  without idle gaps. The poll interval only bounds how long a waiter sleeps
  before re-checking its timeout. Ordering between waiters is not
  guaranteed. Locks for different storyboards never contend with each other.
  """

  def __init__(self, *, poll_interval_seconds: float = 0.05, max_poll_interval_seconds: float = 0.5, timeout_seconds: float = 10.0, clock: Callable[[], float] = time.monotonic) -> None:
    self._held: dict[str, asyncio.Event] = {}
    self._poll_interval = poll_interval_seconds
    self._max_poll_interval = max_poll_interval_seconds
    self._timeout = timeout_seconds
    self._clock = clock

  def is_held(self, storyboard_id: str) -> bool:
    return storyboard_id in self._held

  async def acquire(self, storyboard_id: str) -> None:
    started = self._clock()
    delay = self._poll_interval
    # Check-and-set has no await in between, so it is atomic on the event loop.
    while (released := self._held.get(storyboard_id)) is not None:
      waited = self._clock() - started
      if waited >= self._timeout:
        logger.warning("Lock wait timed out for storyboard %s after %.2fs", storyboard_id, waited)
        raise LockTimeoutError(storyboard_id, waited)
      try:
        await asyncio.wait_for(released.wait(), timeout=min(delay, self._timeout - waited))
      except TimeoutError:
        delay = min(delay * 2, self._max_poll_interval)
    self._held[storyboard_id] = asyncio.Event()

  def release(self, storyboard_id: str) -> None:
    released = self._held.pop(storyboard_id, None)
    if released is not None:
      released.set()

  @asynccontextmanager
  async def hold(self, storyboard_id: str) -> AsyncIterator[None]:
    await self.acquire(storyboard_id)
    try:
      yield
    finally:
      self.release(storyboard_id)
