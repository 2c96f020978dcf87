from __future__ import annotations

import asyncio
import time

import pytest

from gotham.storage.locks import LockTimeoutError, StoryboardLocks


@pytest.mark.anyio
async def test_waiter_times_out_while_lock_is_held() -> None:
  locks = StoryboardLocks(poll_interval_seconds=0.001, max_poll_interval_seconds=0.005, timeout_seconds=0.05)
  await locks.acquire("sb-1")

  with pytest.raises(LockTimeoutError) as excinfo:
    await locks.acquire("sb-1")

  assert excinfo.value.storyboard_id == "sb-1"
  assert isinstance(excinfo.value, TimeoutError)


@pytest.mark.anyio
async def test_waiter_proceeds_after_release() -> None:
  locks = StoryboardLocks(poll_interval_seconds=0.001, timeout_seconds=1.0)
  order: list[str] = []

  async def _first() -> None:
    async with locks.hold("sb-1"):
      order.append("first-in")
      await asyncio.sleep(0.02)
      order.append("first-out")

  async def _second() -> None:
    await asyncio.sleep(0.005)
    async with locks.hold("sb-1"):
      order.append("second-in")

  await asyncio.gather(_first(), _second())

  assert order == ["first-in", "first-out", "second-in"]
  assert not locks.is_held("sb-1")


@pytest.mark.anyio
async def test_different_storyboards_do_not_contend() -> None:
  locks = StoryboardLocks(poll_interval_seconds=0.001, timeout_seconds=0.05)

  async with locks.hold("sb-1"):
    async with locks.hold("sb-2"):
      assert locks.is_held("sb-1")
      assert locks.is_held("sb-2")


@pytest.mark.anyio
async def test_lock_is_released_when_body_raises() -> None:
  locks = StoryboardLocks()

  with pytest.raises(RuntimeError):
    async with locks.hold("sb-1"):
      raise RuntimeError("boom")

  assert not locks.is_held("sb-1")


@pytest.mark.anyio
async def test_release_wakes_waiters_without_waiting_for_the_poll() -> None:
  locks = StoryboardLocks(poll_interval_seconds=0.5, max_poll_interval_seconds=0.5, timeout_seconds=2.0)
  entered: list[int] = []

  async def _worker(index: int) -> None:
    async with locks.hold("sb-1"):
      entered.append(index)
      await asyncio.sleep(0.005)

  started = time.monotonic()
  await asyncio.gather(*(_worker(index) for index in range(10)))
  elapsed = time.monotonic() - started

  assert sorted(entered) == list(range(10))
  assert elapsed < 0.5
  assert not locks.is_held("sb-1")
