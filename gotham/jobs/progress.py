"""Server-sent progress fan-out for generation sessions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import msgspec

from gotham.jobs.models import Clip

if TYPE_CHECKING:
  from gotham.jobs.sessions import Session

logger = logging.getLogger(__name__)

KEEPALIVE_FRAME = ": keep-alive\n\n"

_CLOSED = object()
_encoder = msgspec.json.Encoder()


def format_sse(event: dict[str, Any]) -> str:
  """Render one event as a ``data:`` frame."""
  return f"data: {_encoder.encode(event).decode('utf-8')}\n\n"


def progress_event(session: Session, *, new_clip: Clip | None = None) -> dict[str, Any]:
  data: dict[str, Any] = {"current": session.current, "total": session.total, "status": session.status, "errors": list(session.errors)}
  if new_clip is not None:
    data["newClip"] = new_clip
  return {"type": "progress", "data": data}


def cleanup_event() -> dict[str, Any]:
  return {"type": "cleanup", "data": {"message": "Session cleaned up"}}


class Subscription:
  """One observer's bounded event queue."""

  def __init__(self, *, maxsize: int) -> None:
    self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
    self.dropped = 0
    self.closed = False

  def offer(self, event: dict[str, Any]) -> bool:
    """Enqueue without waiting; a full queue drops the event."""
    if self.closed:
      return False
    try:
      self._queue.put_nowait(event)
    except asyncio.QueueFull:
      self.dropped += 1
      return False
    return True

  def close(self, final_event: dict[str, Any] | None = None) -> None:
    if self.closed:
      return
    # Make room so the terminal frames always fit.
    while self._queue.qsize() > max(self._queue.maxsize - 2, 0):
      self._queue.get_nowait()
    if final_event is not None:
      self._queue.put_nowait(final_event)
    self._queue.put_nowait(_CLOSED)
    self.closed = True

  async def frames(self, *, keepalive_seconds: float) -> AsyncIterator[str]:
    """Yield SSE frames until the subscription is closed."""
    while True:
      try:
        event = await asyncio.wait_for(self._queue.get(), timeout=keepalive_seconds)
      except TimeoutError:
        yield KEEPALIVE_FRAME
        continue
      if event is _CLOSED:
        return
      yield format_sse(event)


class ProgressBroadcaster:
  """Push session snapshots to every subscriber, best effort.

  Delivery is at-most-once per subscriber: a slow observer whose queue is
  full misses intermediate updates but still receives later snapshots.
  """

  def __init__(self, *, queue_size: int = 100, keepalive_seconds: float = 15.0) -> None:
    self._queue_size = max(queue_size, 2)
    self.keepalive_seconds = keepalive_seconds

  def subscribe(self, session: Session) -> Subscription:
    subscription = Subscription(maxsize=self._queue_size)
    session.subscribers.add(subscription)
    subscription.offer(progress_event(session))
    logger.debug("Subscriber attached to session %s (%d total)", session.id, len(session.subscribers))
    return subscription

  def unsubscribe(self, session: Session, subscription: Subscription) -> None:
    session.subscribers.discard(subscription)

  def publish(self, session: Session, *, new_clip: Clip | None = None) -> int:
    """Send the current snapshot to all subscribers; return how many accepted it."""
    event = progress_event(session, new_clip=new_clip)
    delivered = 0
    for subscription in list(session.subscribers):
      if subscription.offer(event):
        delivered += 1
      else:
        logger.debug("Dropped progress update for a slow subscriber on session %s", session.id)
    return delivered

  def close(self, session: Session) -> None:
    for subscription in list(session.subscribers):
      subscription.close(cleanup_event())
    session.subscribers.clear()

  async def stream(self, session: Session, subscription: Subscription) -> AsyncIterator[str]:
    """Yield frames for one HTTP response and detach when the client goes away."""
    try:
      async for frame in subscription.frames(keepalive_seconds=self.keepalive_seconds):
        yield frame
    finally:
      self.unsubscribe(session, subscription)
