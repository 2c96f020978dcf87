"""Request-level orchestration for the generation endpoints."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from gotham.api.models import GenerateSceneRequest, InitializeGenerationRequest, SaveStoryboardRequest
from gotham.jobs.engine import GenerationOutcome
from gotham.jobs.errors import GenerationInProgressError
from gotham.jobs.models import Clip, GenerationState, ScenePlan, Storyboard, completed_orders, merge_clip
from gotham.jobs.sessions import Session
from gotham.services.runtime import Runtime
from gotham.storage.atomic import is_safe_id
from gotham.utils.ids import generate_storyboard_id
from gotham.utils.timestamps import utc_now_iso

logger = logging.getLogger(__name__)


def _explicit_scenes(request: InitializeGenerationRequest) -> list[ScenePlan]:
  scenes: list[ScenePlan] = []
  for index, scene in enumerate(request.scenes or []):
    scenes.append(
      ScenePlan(
        id=scene.id or f"scene{index + 1}",
        description=scene.description,
        prompt=scene.prompt or f"Create an animated scene showing: {scene.description}",
        target_duration_seconds=scene.duration or 5.0,
      )
    )
  return scenes


async def initialize_generation(runtime: Runtime, request: InitializeGenerationRequest) -> tuple[Session, Storyboard]:
  """Plan (or accept) the scenes, persist the storyboard and open a session."""
  settings = runtime.settings
  provider = runtime.registry.resolve_provider(request.provider)
  # Fail before planning when the provider has no credentials.
  runtime.registry.get(provider)

  scene_count = request.scene_count or settings.default_scene_count
  if scene_count > settings.max_scene_count:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"sceneCount must not exceed {settings.max_scene_count}.")

  if request.scenes:
    scenes = _explicit_scenes(request)[: settings.max_scene_count]
    title = request.name or request.prompt[:60]
    description = request.prompt
  else:
    plan = await runtime.planner.plan(request.prompt, provider=provider, scene_count=scene_count)
    scenes = plan.scenes
    title = request.name or plan.title
    description = plan.description

  now = utc_now_iso()
  storyboard = Storyboard(
    id=generate_storyboard_id(),
    name=title,
    description=description,
    provider=provider,
    created_at=now,
    updated_at=now,
    original_scenes=scenes,
    generation_status=GenerationState(status="initializing", total_scenes=len(scenes)),
  )
  session = runtime.sessions.create_session(storyboard.id, provider, len(scenes))
  storyboard.generation_status.active_session_id = session.id
  stored = await runtime.storyboards.save_storyboard(storyboard)
  logger.info("Initialized storyboard %s with %d scenes (session %s)", stored.id, len(scenes), session.id)
  return session, stored


async def start_generation(runtime: Runtime, session_id: str) -> GenerationOutcome:
  """Run the engine for a session and return once every scene has settled.

  A second start for a storyboard that is already generating raises
  GenerationInProgressError (409).
  """
  session = runtime.sessions.require(session_id)
  return await runtime.engine.run_generation(session.storyboard_id, session.id)


async def regenerate_scene(runtime: Runtime, request: GenerateSceneRequest) -> tuple[Clip, Storyboard]:
  """Generate one scene of an existing storyboard again, replacing its clip."""
  provider = runtime.registry.resolve_provider(request.provider) if request.provider else None
  return await runtime.engine.regenerate_scene(request.storyboard_id, request.scene_index, prompt=request.prompt, provider=provider)


async def save_storyboard(runtime: Runtime, request: SaveStoryboardRequest) -> Storyboard:
  """Persist an editor's full copy of a storyboard.

  Clips are reduced to asset references and merged by order. Generation
  state is carried over from the stored record, with the counters
  recomputed for the saved scenes and clips.
  """
  storyboard_id = request.id or generate_storyboard_id()
  if not is_safe_id(storyboard_id):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid storyboard id.")
  if len(request.original_scenes) > runtime.settings.max_scene_count:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"A storyboard may not have more than {runtime.settings.max_scene_count} scenes.")
  owner = runtime.engine.running_session(storyboard_id)
  if owner is not None:
    raise GenerationInProgressError(storyboard_id, owner)

  existing = await runtime.storyboards.get_storyboard(storyboard_id)
  now = utc_now_iso()

  if request.provider:
    provider = runtime.registry.resolve_provider(request.provider)
  elif existing is not None:
    provider = existing.provider
  else:
    provider = runtime.registry.default_provider

  scenes = [ScenePlan(id=scene.id, description=scene.description, prompt=scene.prompt, target_duration_seconds=scene.target_duration_seconds) for scene in request.original_scenes]
  clips: list[Clip] = []
  for clip in request.clips:
    clips = merge_clip(clips, Clip(id=clip.id, order=clip.order, name=clip.name, prompt=clip.prompt, duration_seconds=clip.duration_seconds, asset_id=clip.asset_id, created_at=clip.created_at or now, provider=clip.provider))

  completed = len({order for order in completed_orders(clips) if order < len(scenes)})
  if existing is not None:
    state = existing.generation_status
    state.total_scenes = len(scenes)
    state.completed_scenes = completed
  else:
    state = GenerationState(total_scenes=len(scenes), completed_scenes=completed)

  storyboard = Storyboard(
    id=storyboard_id,
    name=request.name,
    description=request.description,
    provider=provider,
    created_at=existing.created_at if existing is not None else now,
    updated_at=now,
    original_scenes=scenes,
    clips=clips,
    generation_status=state,
  )
  stored = await runtime.storyboards.save_storyboard(storyboard)
  logger.info("Saved storyboard %s from editor (%d scenes, %d clips)", stored.id, len(scenes), len(clips))
  return stored
