"""JSON file storyboard repository with verified atomic writes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import msgspec
from starlette.concurrency import run_in_threadpool

from gotham.jobs.errors import StoryboardNotFoundError
from gotham.jobs.models import Clip, Storyboard, StoryboardSummary, ValidationIssue, completed_orders, merge_clip, sort_clips, summarize
from gotham.storage.assets_repo import AssetsRepository
from gotham.storage.atomic import is_safe_id, write_atomic, write_direct
from gotham.storage.locks import StoryboardLocks
from gotham.utils.timestamps import utc_now_iso

logger = logging.getLogger(__name__)


def _reference_form(clip: Clip) -> Clip:
  """Drop anything but the reference fields of a clip."""
  return Clip(id=clip.id, order=clip.order, name=clip.name, prompt=clip.prompt, duration_seconds=clip.duration_seconds, asset_id=clip.asset_id, created_at=clip.created_at, provider=clip.provider)


class FileStoryboardsRepository:
  """Persist storyboards as ``<root>/<id>.json``.

  Every mutation runs read, mutate, atomic write and read-back verification
  while holding the storyboard's lock. Writes that fail verification fall
  back to a direct write, keep the previous version as ``<id>.json.bak`` and
  record a ``write_verification_failed`` diagnostic on the storyboard.
  """

  def __init__(self, root: Path, *, assets: AssetsRepository, locks: StoryboardLocks) -> None:
    self._root = root
    self._assets = assets
    self._locks = locks
    self._encoder = msgspec.json.Encoder()
    self._decoder = msgspec.json.Decoder(Storyboard)

  @property
  def locks(self) -> StoryboardLocks:
    return self._locks

  def _path(self, storyboard_id: str) -> Path:
    return self._root / f"{storyboard_id}.json"

  def _backup_path(self, storyboard_id: str) -> Path:
    return self._root / f"{storyboard_id}.json.bak"

  def _require_id(self, storyboard_id: str) -> None:
    if not is_safe_id(storyboard_id):
      raise StoryboardNotFoundError(storyboard_id)

  def _read_sync(self, storyboard_id: str) -> Storyboard | None:
    path = self._path(storyboard_id)
    if not path.is_file():
      return None
    try:
      return self._decoder.decode(path.read_bytes())
    except msgspec.DecodeError:
      backup = self._backup_path(storyboard_id)
      if not backup.is_file():
        raise
      logger.error("Storyboard %s is unreadable; falling back to %s", storyboard_id, backup.name, exc_info=True)
      return self._decoder.decode(backup.read_bytes())

  def _verify_written(self, storyboard: Storyboard) -> str | None:
    """Read the file back and return a mismatch description, or None."""
    try:
      written = self._decoder.decode(self._path(storyboard.id).read_bytes())
    except (OSError, msgspec.DecodeError) as exc:
      return f"read-back failed: {exc}"
    if len(written.clips) != len(storyboard.clips):
      return f"clip count mismatch: expected {len(storyboard.clips)}, found {len(written.clips)}"
    for expected, actual in zip(storyboard.clips, written.clips, strict=True):
      if expected.id != actual.id:
        return f"clip id mismatch at order {expected.order}"
      if expected.asset_id is not None and expected.asset_id != actual.asset_id:
        return f"asset id mismatch for clip {expected.id}"
    return None

  def _write_sync(self, storyboard: Storyboard) -> Storyboard:
    self._root.mkdir(parents=True, exist_ok=True)
    path = self._path(storyboard.id)
    previous = path.read_bytes() if path.is_file() else None

    write_atomic(path, self._encoder.encode(storyboard))
    mismatch = self._verify_written(storyboard)
    if mismatch is None:
      return storyboard

    logger.error("Write verification failed for storyboard %s: %s", storyboard.id, mismatch)
    if previous is not None:
      write_direct(self._backup_path(storyboard.id), previous)
    storyboard.validation_results.append(ValidationIssue(code="write_verification_failed", message=mismatch, at=utc_now_iso()))
    write_direct(path, self._encoder.encode(storyboard))
    return storyboard

  async def _check_assets(self, storyboard: Storyboard) -> None:
    reported = {(issue.clip_id, issue.asset_id) for issue in storyboard.validation_results if issue.code == "asset_missing"}
    for clip in storyboard.clips:
      if clip.asset_id is None or (clip.id, clip.asset_id) in reported:
        continue
      if await self._assets.exists_with_content(clip.asset_id):
        continue
      logger.warning("Storyboard %s clip %s references missing asset %s", storyboard.id, clip.id, clip.asset_id)
      storyboard.validation_results.append(ValidationIssue(code="asset_missing", message=f"Asset {clip.asset_id} is missing or empty", at=utc_now_iso(), clip_id=clip.id, asset_id=clip.asset_id))

  async def _persist(self, storyboard: Storyboard, *, check_clip_ids: set[str] | None = None) -> Storyboard:
    """Persist while the caller holds the lock."""
    storyboard.clips = sort_clips([_reference_form(clip) for clip in storyboard.clips])
    storyboard.updated_at = utc_now_iso()
    if check_clip_ids is None:
      await self._check_assets(storyboard)
    else:
      subset = msgspec.structs.replace(storyboard, clips=[clip for clip in storyboard.clips if clip.id in check_clip_ids], validation_results=[])
      await self._check_assets(subset)
      storyboard.validation_results.extend(subset.validation_results)
    return await run_in_threadpool(self._write_sync, storyboard)

  async def _load_for_update(self, storyboard_id: str) -> Storyboard:
    storyboard = await run_in_threadpool(self._read_sync, storyboard_id)
    if storyboard is None:
      raise StoryboardNotFoundError(storyboard_id)
    return storyboard

  async def save_storyboard(self, storyboard: Storyboard) -> Storyboard:
    self._require_id(storyboard.id)
    async with self._locks.hold(storyboard.id):
      return await self._persist(storyboard)

  async def get_storyboard(self, storyboard_id: str) -> Storyboard | None:
    if not is_safe_id(storyboard_id):
      return None
    storyboard = await run_in_threadpool(self._read_sync, storyboard_id)
    if storyboard is not None:
      storyboard.clips = sort_clips(storyboard.clips)
    return storyboard

  async def append_clip(self, storyboard_id: str, clip: Clip) -> Storyboard:
    self._require_id(storyboard_id)
    async with self._locks.hold(storyboard_id):
      storyboard = await self._load_for_update(storyboard_id)
      storyboard.clips = merge_clip(storyboard.clips, clip)
      state = storyboard.generation_status
      state.completed_scenes = len(completed_orders(storyboard.clips))
      state.current_scene_index = max(state.current_scene_index, clip.order)
      # Only the new clip's asset needs checking; earlier clips were checked when written.
      stored = await self._persist(storyboard, check_clip_ids={clip.id})
    logger.info("Appended clip %d to storyboard %s (%d/%d)", clip.order, storyboard_id, stored.generation_status.completed_scenes, stored.generation_status.total_scenes)
    return stored

  async def update_generation_status(self, storyboard_id: str, **fields: Any) -> Storyboard:
    self._require_id(storyboard_id)
    async with self._locks.hold(storyboard_id):
      storyboard = await self._load_for_update(storyboard_id)
      storyboard.generation_status = msgspec.structs.replace(storyboard.generation_status, **fields)
      return await self._persist(storyboard, check_clip_ids=set())

  def _list_sync(self) -> list[StoryboardSummary]:
    if not self._root.is_dir():
      return []
    summaries: list[StoryboardSummary] = []
    for path in self._root.glob("*.json"):
      try:
        summaries.append(summarize(self._decoder.decode(path.read_bytes())))
      except (OSError, msgspec.DecodeError) as exc:
        logger.warning("Skipping unreadable storyboard file %s: %s", path.name, exc)
    summaries.sort(key=lambda summary: summary.updated_at, reverse=True)
    return summaries

  async def list_storyboards(self) -> list[StoryboardSummary]:
    return await run_in_threadpool(self._list_sync)

  def _delete_sync(self, storyboard_id: str) -> bool:
    path = self._path(storyboard_id)
    if not path.is_file():
      return False
    path.unlink()
    self._backup_path(storyboard_id).unlink(missing_ok=True)
    return True

  async def delete_storyboard(self, storyboard_id: str) -> bool:
    if not is_safe_id(storyboard_id):
      return False
    async with self._locks.hold(storyboard_id):
      return await run_in_threadpool(self._delete_sync, storyboard_id)
