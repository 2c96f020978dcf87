"""In-memory generation sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gotham.jobs.errors import SessionNotFoundError
from gotham.jobs.models import Clip, GenerationStatus
from gotham.jobs.progress import ProgressBroadcaster, Subscription
from gotham.utils.ids import generate_session_id
from gotham.utils.timestamps import utc_now_iso

logger = logging.getLogger(__name__)

_LIVE_STATUSES: frozenset[str] = frozenset({"initializing", "generating"})


@dataclass(frozen=True)
class SessionError:
  scene: int | None
  error: str
  kind: str


@dataclass(eq=False)
class Session:
  """Ephemeral observer-facing state for one generation run."""

  id: str
  storyboard_id: str
  provider: str
  total: int
  current: int = 0
  status: GenerationStatus = "initializing"
  errors: list[SessionError] = field(default_factory=list)
  completed: set[int] = field(default_factory=set)
  subscribers: set[Subscription] = field(default_factory=set)
  created_at: str = field(default_factory=utc_now_iso)

  @property
  def is_live(self) -> bool:
    return self.status in _LIVE_STATUSES


class SessionStore:
  """Owns sessions and publishes every change through the broadcaster."""

  def __init__(self, broadcaster: ProgressBroadcaster) -> None:
    self._sessions: dict[str, Session] = {}
    self.broadcaster = broadcaster

  def create_session(self, storyboard_id: str, provider: str, total_scenes: int) -> Session:
    session = Session(id=generate_session_id(), storyboard_id=storyboard_id, provider=provider, total=total_scenes)
    self._sessions[session.id] = session
    logger.info("Created session %s for storyboard %s (%d scenes)", session.id, storyboard_id, total_scenes)
    return session

  def get(self, session_id: str) -> Session | None:
    return self._sessions.get(session_id)

  def require(self, session_id: str) -> Session:
    session = self._sessions.get(session_id)
    if session is None:
      raise SessionNotFoundError(session_id)
    return session

  def find_by_storyboard(self, storyboard_id: str) -> Session | None:
    """Return the most recently created session for a storyboard."""
    matches = [session for session in self._sessions.values() if session.storyboard_id == storyboard_id]
    return matches[-1] if matches else None

  def has_live_session(self, storyboard_id: str, session_id: str) -> bool:
    session = self._sessions.get(session_id)
    return session is not None and session.storyboard_id == storyboard_id and session.is_live

  def live_session_for(self, storyboard_id: str, *, excluding: str | None = None) -> Session | None:
    for session in self._sessions.values():
      if session.storyboard_id == storyboard_id and session.id != excluding and session.is_live:
        return session
    return None

  def report_scene_complete(self, session: Session, clip: Clip) -> bool:
    """Count a scene once by its order; return False when it was already counted."""
    if clip.order in session.completed:
      return False
    session.completed.add(clip.order)
    session.current = len(session.completed)
    self.broadcaster.publish(session, new_clip=clip)
    return True

  def set_total(self, session: Session, total: int) -> None:
    session.total = total

  def set_status(self, session: Session, status: GenerationStatus) -> None:
    session.status = status
    self.broadcaster.publish(session)

  def record_error(self, session: Session, *, scene: int | None, error: str, kind: str) -> None:
    session.errors.append(SessionError(scene=scene, error=error, kind=kind))
    self.broadcaster.publish(session)

  def fail(self, session: Session, error: str) -> None:
    session.errors.append(SessionError(scene=None, error=error, kind="fatal"))
    self.set_status(session, "failed")

  def subscribe(self, session_id: str) -> tuple[Session, Subscription]:
    session = self.require(session_id)
    return session, self.broadcaster.subscribe(session)

  def cleanup(self, session_id: str) -> bool:
    """Notify subscribers, close their streams and forget the session."""
    session = self._sessions.pop(session_id, None)
    if session is None:
      return False
    self.broadcaster.close(session)
    logger.info("Cleaned up session %s", session_id)
    return True

  def __len__(self) -> int:
    return len(self._sessions)
