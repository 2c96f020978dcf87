"""Concurrent per-scene generation for one storyboard."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from gotham.ai.errors import ErrorKind, GenerationError, classify_exception
from gotham.ai.prompts import build_scene_prompt
from gotham.ai.providers.base import ContentGenerator
from gotham.ai.providers.registry import GeneratorRegistry
from gotham.ai.rate_limiter import RateLimiter
from gotham.jobs.errors import GenerationInProgressError, MissingScenePlanError, SceneIndexError, StoryboardNotFoundError
from gotham.jobs.models import TERMINAL_STATUSES, Clip, GenerationStatus, Storyboard, completed_orders
from gotham.jobs.sessions import Session, SessionError, SessionStore
from gotham.storage.assets_repo import AssetRecord, AssetsRepository, CaptionEntry
from gotham.storage.locks import LockTimeoutError
from gotham.storage.storyboards_repo import StoryboardsRepository
from gotham.utils.ids import generate_asset_id, generate_clip_id
from gotham.utils.retry import execute_with_retry
from gotham.utils.timestamps import utc_now_iso

logger = logging.getLogger(__name__)


class SceneResult(StrEnum):
  COMPLETED = "completed"
  PAUSED = "paused"
  FAILED = "failed"


@dataclass(frozen=True)
class GenerationOutcome:
  storyboard_id: str
  session_id: str
  status: GenerationStatus
  completed_scenes: int
  total_scenes: int
  errors: list[SessionError]
  paused_scene_index: int | None = None


def _is_lock_timeout(exc: Exception) -> bool:
  return isinstance(exc, LockTimeoutError)


class GenerationEngine:
  """Generate every missing scene of a storyboard concurrently.

  Scenes are isolated from each other: a failed scene is recorded and the
  batch carries on. Provider throttling pauses the storyboard so the
  recovery scanner can resume it later from the first missing scene.
  """

  def __init__(self, *, storyboards: StoryboardsRepository, assets: AssetsRepository, limiter: RateLimiter, registry: GeneratorRegistry, sessions: SessionStore, append_clip_max_attempts: int = 3) -> None:
    self._storyboards = storyboards
    self._assets = assets
    self._limiter = limiter
    self._registry = registry
    self._sessions = sessions
    self._append_attempts = append_clip_max_attempts
    self._running: dict[str, str] = {}

  async def _update_status(self, storyboard_id: str, **fields: Any) -> Storyboard:
    return await execute_with_retry(operation_name="update_generation_status", func=lambda: self._storyboards.update_generation_status(storyboard_id, **fields), retryable=_is_lock_timeout, max_attempts=self._append_attempts)

  async def _fail_fatal(self, session: Session, storyboard_id: str, message: str, *, storyboard_exists: bool) -> None:
    logger.error("Generation for storyboard %s failed: %s", storyboard_id, message)
    self._sessions.fail(session, message)
    if storyboard_exists:
      await self._update_status(storyboard_id, status="failed", completed_at=utc_now_iso())

  def is_running(self, storyboard_id: str) -> bool:
    return storyboard_id in self._running

  def running_session(self, storyboard_id: str) -> str | None:
    return self._running.get(storyboard_id)

  async def run_generation(self, storyboard_id: str, session_id: str) -> GenerationOutcome:
    """Generate the missing scenes of a storyboard under one session.

    Only one run per storyboard may be in flight, and a start is refused
    while another live session (such as a recovery) owns the storyboard.
    Both checks and the claim happen before the first await, so a
    concurrent start is rejected rather than queued.
    """
    session = self._sessions.require(session_id)
    owner = self._running.get(storyboard_id)
    if owner is None:
      other = self._sessions.live_session_for(storyboard_id, excluding=session_id)
      owner = other.id if other is not None else None
    if owner is not None:
      raise GenerationInProgressError(storyboard_id, owner)
    self._running[storyboard_id] = session_id
    try:
      return await self._run_claimed(storyboard_id, session)
    except Exception as exc:
      # A run that ends abnormally must not leave its session live.
      if session.is_live:
        self._sessions.fail(session, str(exc))
      raise
    finally:
      del self._running[storyboard_id]

  async def _run_claimed(self, storyboard_id: str, session: Session) -> GenerationOutcome:
    session_id = session.id
    storyboard = await self._storyboards.get_storyboard(storyboard_id)
    if storyboard is None:
      await self._fail_fatal(session, storyboard_id, "Storyboard not found", storyboard_exists=False)
      raise StoryboardNotFoundError(storyboard_id)
    if not storyboard.original_scenes:
      await self._fail_fatal(session, storyboard_id, "Storyboard has no scenes", storyboard_exists=True)
      raise MissingScenePlanError(storyboard_id)

    provider = session.provider or storyboard.provider
    try:
      generator = self._registry.get(provider)
    except GenerationError as exc:
      # Keep the storyboard resumable once the provider is configured.
      self._sessions.fail(session, str(exc))
      await self._update_status(storyboard_id, status="paused_error", paused_reason=str(exc), paused_at=utc_now_iso())
      raise

    total = len(storyboard.original_scenes)
    done = {order for order in completed_orders(storyboard.clips) if order < total}
    self._sessions.set_total(session, total)

    await self._update_status(storyboard_id, status="generating", started_at=utc_now_iso(), active_session_id=session_id, total_scenes=total, completed_scenes=len(done), completed_at=None, paused_reason=None, paused_at=None, paused_scene_index=None)
    self._sessions.set_status(session, "generating")

    # Re-emit scenes that already have clips so observers see them as done.
    for clip in storyboard.clips:
      if clip.order in done:
        self._sessions.report_scene_complete(session, clip)

    pending = [index for index in range(total) if index not in done]
    logger.info("Generating %d of %d scenes for storyboard %s via %s", len(pending), total, storyboard_id, provider)

    results = await asyncio.gather(*(self._generate_scene(storyboard, session, generator, index) for index in pending))
    paused = [index for index, result in zip(pending, results, strict=True) if result is SceneResult.PAUSED]

    return await self._finalize(storyboard_id, session, total, paused)

  async def _produce_clip(self, storyboard: Storyboard, generator: ContentGenerator, index: int, *, prompt_override: str | None = None) -> tuple[Clip, Storyboard]:
    """Generate one scene, store its asset and link it into the storyboard."""
    scene = storyboard.original_scenes[index]
    provider = generator.provider.value
    scene_prompt = prompt_override or scene.prompt
    prompt = build_scene_prompt(title=storyboard.name, description=storyboard.description, scene_description=scene.description, scene_prompt=scene_prompt, index=index, total=len(storyboard.original_scenes), duration_seconds=scene.target_duration_seconds)

    generated = await self._limiter.execute(lambda: generator.generate(prompt), provider)

    now = utc_now_iso()
    captions: list[CaptionEntry] = []
    if prompt_override:
      captions.append(CaptionEntry(id=generate_clip_id(), sender="user", text=prompt_override, timestamp=now))
    if generated.caption:
      captions.append(CaptionEntry(id=generate_clip_id(), sender="ai", text=generated.caption, timestamp=now))
    asset = AssetRecord(id=generate_asset_id(), name=f"{storyboard.name} - Scene {index + 1}", content=generated.content, provider=provider, created_at=now, caption_history=captions)
    await self._assets.put(asset)

    clip = Clip(id=generate_clip_id(), order=index, name=f"Scene {index + 1}", prompt=scene_prompt, duration_seconds=scene.target_duration_seconds, asset_id=asset.id, provider=provider, created_at=now)
    stored = await execute_with_retry(operation_name="append_clip", func=lambda: self._storyboards.append_clip(storyboard.id, clip), retryable=_is_lock_timeout, max_attempts=self._append_attempts)
    return clip, stored

  async def _generate_scene(self, storyboard: Storyboard, session: Session, generator: ContentGenerator, index: int) -> SceneResult:
    try:
      clip, _ = await self._produce_clip(storyboard, generator, index)
    except Exception as exc:
      kind = classify_exception(exc)
      self._sessions.record_error(session, scene=index, error=str(exc), kind=kind.value)
      if kind is ErrorKind.RECOVERABLE_THROTTLE:
        logger.warning("Scene %d of storyboard %s throttled; pausing: %s", index, storyboard.id, exc)
        try:
          await self._update_status(storyboard.id, status="paused_rate_limited", paused_reason=str(exc), paused_at=utc_now_iso(), paused_scene_index=index)
        except (LockTimeoutError, StoryboardNotFoundError) as persist_exc:
          # The final status write records the pause again once the batch settles.
          logger.warning("Could not persist pause for storyboard %s scene %d: %s", storyboard.id, index, persist_exc)
        return SceneResult.PAUSED
      logger.error("Scene %d of storyboard %s failed: %s", index, storyboard.id, exc, exc_info=not isinstance(exc, GenerationError))
      return SceneResult.FAILED

    self._sessions.report_scene_complete(session, clip)
    return SceneResult.COMPLETED

  async def _finalize(self, storyboard_id: str, session: Session, total: int, paused: list[int]) -> GenerationOutcome:
    final = await self._storyboards.get_storyboard(storyboard_id)
    if final is None:
      # Deleted while generating; nothing left to update.
      await self._fail_fatal(session, storyboard_id, "Storyboard was deleted during generation", storyboard_exists=False)
      raise StoryboardNotFoundError(storyboard_id)

    done = {order for order in completed_orders(final.clips) if order < total}
    status: GenerationStatus
    if paused:
      status = "paused_rate_limited"
    elif len(done) == total:
      status = "completed"
    else:
      status = "completed_with_errors"

    fields: dict[str, Any] = {"status": status, "completed_scenes": len(done), "total_scenes": total}
    if status in TERMINAL_STATUSES:
      fields["completed_at"] = utc_now_iso()
    if paused:
      fields["paused_scene_index"] = min(paused)
    else:
      fields.update(paused_reason=None, paused_at=None, paused_scene_index=None)

    await self._update_status(storyboard_id, **fields)
    self._sessions.set_status(session, status)
    logger.info("Storyboard %s generation settled: status=%s completed=%d/%d", storyboard_id, status, len(done), total)
    return GenerationOutcome(storyboard_id=storyboard_id, session_id=session.id, status=status, completed_scenes=len(done), total_scenes=total, errors=list(session.errors), paused_scene_index=min(paused) if paused else None)

  async def regenerate_scene(self, storyboard_id: str, scene_index: int, *, prompt: str | None = None, provider: str | None = None) -> tuple[Clip, Storyboard]:
    """Generate one scene again and replace its clip.

    Runs outside any session, so provider errors propagate to the caller
    instead of pausing the storyboard. Refused while a batch run owns the
    storyboard.
    """
    owner = self._running.get(storyboard_id)
    if owner is not None:
      raise GenerationInProgressError(storyboard_id, owner)

    storyboard = await self._storyboards.get_storyboard(storyboard_id)
    if storyboard is None:
      raise StoryboardNotFoundError(storyboard_id)
    if not 0 <= scene_index < len(storyboard.original_scenes):
      raise SceneIndexError(storyboard_id, scene_index, len(storyboard.original_scenes))

    generator = self._registry.get(provider or storyboard.provider)
    clip, stored = await self._produce_clip(storyboard, generator, scene_index, prompt_override=prompt)
    logger.info("Regenerated scene %d of storyboard %s as clip %s", scene_index, storyboard_id, clip.id)
    return clip, stored
