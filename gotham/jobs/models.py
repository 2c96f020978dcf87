"""Domain models for storyboards, clips and generation progress."""

from __future__ import annotations

from typing import Literal

import msgspec

GenerationStatus = Literal["initializing", "generating", "paused_rate_limited", "paused_error", "completed", "completed_with_errors", "failed"]

PAUSED_STATUSES: frozenset[str] = frozenset({"paused_rate_limited", "paused_error"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "completed_with_errors", "failed"})
RESUMABLE_STATUSES: frozenset[str] = PAUSED_STATUSES | {"generating"}

DEFAULT_SCENE_DURATION_SECONDS = 5.0


class ScenePlan(msgspec.Struct, rename="camel", kw_only=True):
  """One planned scene. The plan is fixed when the storyboard is created."""

  id: str
  description: str
  prompt: str
  target_duration_seconds: float = DEFAULT_SCENE_DURATION_SECONDS


class Clip(msgspec.Struct, rename="camel", kw_only=True):
  """Reference to a generated scene; the animation itself lives in the asset store."""

  id: str
  order: int
  name: str
  prompt: str
  duration_seconds: float
  asset_id: str | None
  created_at: str
  provider: str | None = None


class GenerationState(msgspec.Struct, rename="camel", kw_only=True):
  status: GenerationStatus = "initializing"
  completed_scenes: int = 0
  total_scenes: int = 0
  current_scene_index: int = 0
  active_session_id: str | None = None
  started_at: str | None = None
  completed_at: str | None = None
  paused_reason: str | None = None
  paused_at: str | None = None
  paused_scene_index: int | None = None
  recovered_at: str | None = None


class ValidationIssue(msgspec.Struct, rename="camel", kw_only=True):
  """Persistence-integrity warning attached to a storyboard."""

  code: str
  message: str
  at: str
  clip_id: str | None = None
  asset_id: str | None = None


class Storyboard(msgspec.Struct, rename="camel", kw_only=True):
  """Durable record for one movie."""

  id: str
  name: str
  provider: str
  created_at: str
  updated_at: str
  description: str = ""
  original_scenes: list[ScenePlan] = msgspec.field(default_factory=list)
  clips: list[Clip] = msgspec.field(default_factory=list)
  generation_status: GenerationState = msgspec.field(default_factory=GenerationState)
  validation_results: list[ValidationIssue] = msgspec.field(default_factory=list)


class StoryboardSummary(msgspec.Struct, rename="camel", kw_only=True):
  id: str
  name: str
  description: str
  clip_count: int
  status: GenerationStatus
  completed_scenes: int
  total_scenes: int
  active_session_id: str | None
  updated_at: str


def sort_clips(clips: list[Clip]) -> list[Clip]:
  """Return clips ordered by scene index."""
  return sorted(clips, key=lambda clip: clip.order)


def merge_clip(clips: list[Clip], clip: Clip) -> list[Clip]:
  """Insert a clip, replacing any existing clip with the same order."""
  merged = [existing for existing in clips if existing.order != clip.order]
  merged.append(clip)
  return sort_clips(merged)


def completed_orders(clips: list[Clip]) -> set[int]:
  return {clip.order for clip in clips}


def resume_index(storyboard: Storyboard) -> int | None:
  """Return the lowest scene index without a clip, or None when every scene is done."""
  done = completed_orders(storyboard.clips)
  for index in range(len(storyboard.original_scenes)):
    if index not in done:
      return index
  return None


def summarize(storyboard: Storyboard) -> StoryboardSummary:
  state = storyboard.generation_status
  return StoryboardSummary(
    id=storyboard.id,
    name=storyboard.name,
    description=storyboard.description,
    clip_count=len(storyboard.clips),
    status=state.status,
    completed_scenes=state.completed_scenes,
    total_scenes=state.total_scenes,
    active_session_id=state.active_session_id,
    updated_at=storyboard.updated_at,
  )
