"""Resumption of interrupted or paused storyboard generation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass

from gotham.jobs.engine import GenerationEngine
from gotham.jobs.errors import GenerationInProgressError
from gotham.jobs.models import RESUMABLE_STATUSES, StoryboardSummary, resume_index
from gotham.jobs.sessions import SessionStore
from gotham.storage.storyboards_repo import StoryboardsRepository
from gotham.utils.timestamps import utc_now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecoveredJob:
  storyboard_id: str
  session_id: str
  resume_index: int


class RecoveryScanner:
  """Find unfinished storyboards without a live session and restart them.

  Runs once at startup and then on a fixed interval. Each recovered
  storyboard gets a fresh session and a background generation run; the
  scan itself never waits for those runs.
  """

  def __init__(self, *, storyboards: StoryboardsRepository, sessions: SessionStore, engine: GenerationEngine, interval_seconds: float = 300.0) -> None:
    self._storyboards = storyboards
    self._sessions = sessions
    self._engine = engine
    self._interval = interval_seconds
    self._recovering: set[str] = set()
    self._runs: set[asyncio.Task[None]] = set()
    self._loop_task: asyncio.Task[None] | None = None

  @property
  def recovering(self) -> frozenset[str]:
    return frozenset(self._recovering)

  def _is_candidate(self, summary: StoryboardSummary) -> bool:
    if summary.status not in RESUMABLE_STATUSES:
      return False
    # Paused records with every scene done reach _recover, which marks them completed.
    if summary.status == "generating" and summary.total_scenes and summary.completed_scenes >= summary.total_scenes:
      return False
    if summary.id in self._recovering or self._engine.is_running(summary.id):
      return False
    if summary.active_session_id and self._sessions.has_live_session(summary.id, summary.active_session_id):
      return False
    return True

  async def scan_once(self) -> list[RecoveredJob]:
    summaries = await self._storyboards.list_storyboards()
    recovered: list[RecoveredJob] = []
    for summary in summaries:
      if not self._is_candidate(summary):
        continue
      job = await self._recover(summary.id)
      if job is not None:
        recovered.append(job)

    if recovered:
      logger.info("Recovery scan resumed %d storyboard(s)", len(recovered))
    return recovered

  async def _recover(self, storyboard_id: str) -> RecoveredJob | None:
    self._recovering.add(storyboard_id)
    launched = False
    try:
      storyboard = await self._storyboards.get_storyboard(storyboard_id)
      if storyboard is None:
        return None
      index = resume_index(storyboard)
      if index is None:
        logger.info("Storyboard %s has every scene; marking completed", storyboard_id)
        await self._storyboards.update_generation_status(storyboard_id, status="completed", completed_scenes=len(storyboard.original_scenes), completed_at=utc_now_iso(), paused_reason=None, paused_at=None, paused_scene_index=None)
        return None

      session = self._sessions.create_session(storyboard_id, storyboard.provider, len(storyboard.original_scenes))
      await self._storyboards.update_generation_status(storyboard_id, status="generating", active_session_id=session.id, recovered_at=utc_now_iso(), current_scene_index=index, paused_reason=None, paused_at=None, paused_scene_index=None)
      logger.info("Resuming storyboard %s from scene %d with session %s", storyboard_id, index, session.id)

      task = asyncio.create_task(self._run(storyboard_id, session.id))
      self._runs.add(task)
      task.add_done_callback(self._runs.discard)
      launched = True
      return RecoveredJob(storyboard_id=storyboard_id, session_id=session.id, resume_index=index)
    finally:
      if not launched:
        self._recovering.discard(storyboard_id)

  async def _run(self, storyboard_id: str, session_id: str) -> None:
    try:
      outcome = await self._engine.run_generation(storyboard_id, session_id)
      logger.info("Recovered storyboard %s finished with status %s", storyboard_id, outcome.status)
    except GenerationInProgressError as exc:
      # Another run claimed the storyboard first; this session never started.
      logger.info("Recovery of storyboard %s skipped: %s", storyboard_id, exc)
      self._sessions.cleanup(session_id)
    except Exception:
      logger.exception("Recovered generation for storyboard %s failed", storyboard_id)
    finally:
      self._recovering.discard(storyboard_id)

  async def _loop(self) -> None:
    while True:
      try:
        await self.scan_once()
      except Exception:
        logger.exception("Recovery scan failed; retrying in %.0fs", self._interval)
      await asyncio.sleep(self._interval)

  def start(self) -> None:
    """Scan now and then every interval until stopped."""
    if self._loop_task is not None and not self._loop_task.done():
      return
    self._loop_task = asyncio.create_task(self._loop())

  async def stop(self) -> None:
    tasks = list(self._runs)
    if self._loop_task is not None:
      tasks.append(self._loop_task)
      self._loop_task = None
    for task in tasks:
      task.cancel()
    for task in tasks:
      with contextlib.suppress(asyncio.CancelledError):
        await task

  async def wait_for_runs(self) -> None:
    """Wait for recovered runs launched so far."""
    if self._runs:
      await asyncio.gather(*list(self._runs), return_exceptions=True)
