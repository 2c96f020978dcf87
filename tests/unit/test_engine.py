from __future__ import annotations

import asyncio

import pytest
from fakes import ScriptedGenerator, make_clip, make_storyboard, put_asset

from gotham.ai.errors import ErrorKind, GenerationError
from gotham.jobs.engine import GenerationOutcome
from gotham.jobs.errors import GenerationInProgressError, MissingScenePlanError, SceneIndexError, StoryboardNotFoundError
from gotham.services.generation import start_generation
from gotham.services.runtime import Runtime


def _start(runtime: Runtime, storyboard_id: str, scene_count: int) -> str:
  session = runtime.sessions.create_session(storyboard_id, "openai", scene_count)
  return session.id


@pytest.mark.anyio
async def test_generates_every_scene_and_completes(runtime: Runtime, generator: ScriptedGenerator) -> None:
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=3))
  session_id = _start(runtime, "sb-1", 3)

  outcome = await runtime.engine.run_generation("sb-1", session_id)

  assert outcome.status == "completed"
  assert outcome.completed_scenes == 3
  assert sorted(generator.calls) == [0, 1, 2]
  stored = await runtime.storyboards.get_storyboard("sb-1")
  assert stored is not None
  assert [clip.order for clip in stored.clips] == [0, 1, 2]
  assert stored.generation_status.status == "completed"
  assert stored.generation_status.completed_at is not None
  assert stored.validation_results == []
  for clip in stored.clips:
    asset = await runtime.assets.get(clip.asset_id or "")
    assert asset is not None
    assert f'id="scene-{clip.order}"' in asset.content
    assert asset.caption_history[0].text == f"Scene {clip.order} caption"


@pytest.mark.anyio
async def test_resume_only_generates_missing_scenes(runtime: Runtime, generator: ScriptedGenerator) -> None:
  await put_asset(runtime.assets, "asset-0")
  await put_asset(runtime.assets, "asset-2")
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=4, clips=[make_clip(0), make_clip(2)], status="paused_rate_limited"))
  session_id = _start(runtime, "sb-1", 4)

  outcome = await runtime.engine.run_generation("sb-1", session_id)

  assert sorted(generator.calls) == [1, 3]
  assert outcome.status == "completed"
  stored = await runtime.storyboards.get_storyboard("sb-1")
  assert stored is not None
  assert [clip.order for clip in stored.clips] == [0, 1, 2, 3]
  # Existing clips are kept as they were.
  assert stored.clips[0].asset_id == "asset-0"
  assert stored.clips[2].asset_id == "asset-2"
  session = runtime.sessions.require(session_id)
  assert session.current == 4


@pytest.mark.anyio
async def test_throttled_scene_pauses_storyboard(runtime: Runtime, generator: ScriptedGenerator) -> None:
  generator.failures[1] = GenerationError("429 Too Many Requests", kind=ErrorKind.RECOVERABLE_THROTTLE, provider="openai", status_code=429)
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=3))
  session_id = _start(runtime, "sb-1", 3)

  outcome = await runtime.engine.run_generation("sb-1", session_id)

  assert outcome.status == "paused_rate_limited"
  assert outcome.paused_scene_index == 1
  stored = await runtime.storyboards.get_storyboard("sb-1")
  assert stored is not None
  assert [clip.order for clip in stored.clips] == [0, 2]
  assert stored.generation_status.status == "paused_rate_limited"
  assert stored.generation_status.paused_scene_index == 1
  assert stored.generation_status.paused_reason is not None
  assert stored.generation_status.completed_at is None
  assert [(error.scene, error.kind) for error in outcome.errors] == [(1, "recoverable_throttle")]


@pytest.mark.anyio
async def test_untyped_429_is_classified_as_throttle(runtime: Runtime, generator: ScriptedGenerator) -> None:
  class _SdkError(Exception):
    status_code = 429

  generator.failures[0] = _SdkError("rate limited")
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=2))
  session_id = _start(runtime, "sb-1", 2)

  outcome = await runtime.engine.run_generation("sb-1", session_id)

  assert outcome.status == "paused_rate_limited"
  assert outcome.paused_scene_index == 0


@pytest.mark.anyio
async def test_permanent_failure_does_not_stop_other_scenes(runtime: Runtime, generator: ScriptedGenerator) -> None:
  generator.failures[0] = GenerationError("content policy", kind=ErrorKind.PERMANENT_FAILURE, provider="openai")
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=3))
  session_id = _start(runtime, "sb-1", 3)

  outcome = await runtime.engine.run_generation("sb-1", session_id)

  assert outcome.status == "completed_with_errors"
  assert outcome.completed_scenes == 2
  stored = await runtime.storyboards.get_storyboard("sb-1")
  assert stored is not None
  assert [clip.order for clip in stored.clips] == [1, 2]
  assert stored.generation_status.completed_at is not None
  assert [(error.scene, error.kind) for error in outcome.errors] == [(0, "permanent_failure")]


@pytest.mark.anyio
async def test_out_of_order_completion_reports_distinct_scene_count(runtime: Runtime, generator: ScriptedGenerator) -> None:
  generator.delays.update({0: 0.05, 1: 0.0, 2: 0.02})
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=3))
  session_id = _start(runtime, "sb-1", 3)
  session, subscription = runtime.sessions.subscribe(session_id)

  await runtime.engine.run_generation("sb-1", session_id)

  assert generator.completed == [1, 2, 0]
  assert session.current == 3
  assert session.completed == {0, 1, 2}

  runtime.sessions.cleanup(session_id)
  frames = [frame async for frame in subscription.frames(keepalive_seconds=1.0)]
  clip_frames = [frame for frame in frames if '"newClip"' in frame]
  assert len(clip_frames) == 3
  assert '"current":3' in clip_frames[-1]


@pytest.mark.anyio
async def test_missing_storyboard_fails_session(runtime: Runtime) -> None:
  session_id = _start(runtime, "ghost", 2)

  with pytest.raises(StoryboardNotFoundError):
    await runtime.engine.run_generation("ghost", session_id)

  session = runtime.sessions.require(session_id)
  assert session.status == "failed"
  assert session.errors[-1].kind == "fatal"


@pytest.mark.anyio
async def test_storyboard_without_scenes_is_failed(runtime: Runtime) -> None:
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=0))
  session_id = _start(runtime, "sb-1", 0)

  with pytest.raises(MissingScenePlanError):
    await runtime.engine.run_generation("sb-1", session_id)

  stored = await runtime.storyboards.get_storyboard("sb-1")
  assert stored is not None
  assert stored.generation_status.status == "failed"


@pytest.mark.anyio
async def test_unconfigured_provider_leaves_storyboard_resumable(runtime: Runtime) -> None:
  storyboard = make_storyboard(scene_count=2)
  storyboard.provider = "anthropic"
  await runtime.storyboards.save_storyboard(storyboard)
  session = runtime.sessions.create_session("sb-1", "anthropic", 2)

  with pytest.raises(GenerationError):
    await runtime.engine.run_generation("sb-1", session.id)

  stored = await runtime.storyboards.get_storyboard("sb-1")
  assert stored is not None
  assert stored.generation_status.status == "paused_error"
  assert session.status == "failed"


@pytest.mark.anyio
async def test_concurrent_starts_on_one_session_generate_each_scene_once(runtime: Runtime, generator: ScriptedGenerator) -> None:
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=3))
  session_id = _start(runtime, "sb-1", 3)

  results = await asyncio.gather(start_generation(runtime, session_id), start_generation(runtime, session_id), return_exceptions=True)

  assert sorted(type(result).__name__ for result in results) == ["GenerationInProgressError", "GenerationOutcome"]
  outcome = next(result for result in results if isinstance(result, GenerationOutcome))
  rejected = next(result for result in results if isinstance(result, GenerationInProgressError))
  assert outcome.status == "completed"
  assert rejected.status_code == 409
  assert sorted(generator.calls) == [0, 1, 2]
  assert not runtime.engine.is_running("sb-1")


@pytest.mark.anyio
async def test_start_on_stale_session_is_refused_while_recovery_runs(runtime: Runtime, generator: ScriptedGenerator) -> None:
  await put_asset(runtime.assets, "asset-0")
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=3, clips=[make_clip(0)], status="paused_rate_limited"))
  stale = runtime.sessions.create_session("sb-1", "openai", 3)
  runtime.sessions.set_status(stale, "paused_rate_limited")
  await runtime.storyboards.update_generation_status("sb-1", active_session_id=stale.id)

  jobs = await runtime.recovery.scan_once()
  with pytest.raises(GenerationInProgressError) as excinfo:
    await start_generation(runtime, stale.id)
  await runtime.recovery.wait_for_runs()

  assert excinfo.value.session_id == jobs[0].session_id
  assert sorted(generator.calls) == [1, 2]
  assert stale.status == "paused_rate_limited"
  stored = await runtime.storyboards.get_storyboard("sb-1")
  assert stored is not None
  assert stored.generation_status.status == "completed"
  assert stored.generation_status.active_session_id == jobs[0].session_id


@pytest.mark.anyio
async def test_recovery_run_yields_to_a_start_that_claimed_first(runtime: Runtime, generator: ScriptedGenerator) -> None:
  generator.delays[1] = 0.05
  await put_asset(runtime.assets, "asset-0")
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=3, clips=[make_clip(0)], status="paused_rate_limited"))
  stale = runtime.sessions.create_session("sb-1", "openai", 3)
  runtime.sessions.set_status(stale, "paused_rate_limited")

  run = asyncio.create_task(start_generation(runtime, stale.id))
  await asyncio.sleep(0)
  jobs = await runtime.recovery.scan_once()
  outcome = await run
  await runtime.recovery.wait_for_runs()

  assert jobs == []
  assert outcome.status == "completed"
  assert sorted(generator.calls) == [1, 2]


@pytest.mark.anyio
async def test_regenerate_scene_replaces_its_clip(runtime: Runtime, generator: ScriptedGenerator) -> None:
  for order in (0, 1, 2):
    await put_asset(runtime.assets, f"asset-{order}")
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=3, clips=[make_clip(0), make_clip(1), make_clip(2)], status="completed"))

  clip, stored = await runtime.engine.regenerate_scene("sb-1", 1, prompt="Calmer waves at dawn")

  assert generator.calls == [1]
  assert clip.order == 1
  assert clip.prompt == "Calmer waves at dawn"
  assert [existing.asset_id for existing in stored.clips] == ["asset-0", clip.asset_id, "asset-2"]
  assert stored.generation_status.completed_scenes == 3
  assert stored.generation_status.status == "completed"
  asset = await runtime.assets.get(clip.asset_id or "")
  assert asset is not None
  assert [(entry.sender, entry.text) for entry in asset.caption_history] == [("user", "Calmer waves at dawn"), ("ai", "Scene 1 caption")]


@pytest.mark.anyio
async def test_regenerate_scene_fills_a_missing_scene(runtime: Runtime, generator: ScriptedGenerator) -> None:
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=2))

  clip, stored = await runtime.engine.regenerate_scene("sb-1", 0)

  assert clip.prompt == "Draw scene 1"
  assert [existing.order for existing in stored.clips] == [0]
  assert stored.generation_status.completed_scenes == 1


@pytest.mark.anyio
async def test_regenerate_scene_rejects_bad_targets(runtime: Runtime, generator: ScriptedGenerator) -> None:
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=2))

  with pytest.raises(SceneIndexError) as excinfo:
    await runtime.engine.regenerate_scene("sb-1", 2)
  with pytest.raises(StoryboardNotFoundError):
    await runtime.engine.regenerate_scene("missing", 0)

  assert excinfo.value.status_code == 400
  assert generator.calls == []


@pytest.mark.anyio
async def test_regenerate_scene_propagates_provider_errors(runtime: Runtime, generator: ScriptedGenerator) -> None:
  generator.failures[0] = GenerationError("quota", kind=ErrorKind.RECOVERABLE_THROTTLE, provider="openai", status_code=429)
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=2, status="completed_with_errors"))

  with pytest.raises(GenerationError):
    await runtime.engine.regenerate_scene("sb-1", 0)

  stored = await runtime.storyboards.get_storyboard("sb-1")
  assert stored is not None
  assert stored.clips == []
  assert stored.generation_status.status == "completed_with_errors"


@pytest.mark.anyio
async def test_regenerate_scene_is_refused_during_a_batch_run(runtime: Runtime, generator: ScriptedGenerator) -> None:
  generator.delays[0] = 0.05
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=1))
  session_id = _start(runtime, "sb-1", 1)

  run = asyncio.create_task(runtime.engine.run_generation("sb-1", session_id))
  await asyncio.sleep(0)
  with pytest.raises(GenerationInProgressError):
    await runtime.engine.regenerate_scene("sb-1", 0)
  outcome = await run

  assert outcome.status == "completed"
  assert generator.calls == [0]


@pytest.mark.anyio
async def test_run_that_dies_does_not_leave_its_session_live(runtime: Runtime, generator: ScriptedGenerator, monkeypatch: pytest.MonkeyPatch) -> None:
  await runtime.storyboards.save_storyboard(make_storyboard(scene_count=2))
  session_id = _start(runtime, "sb-1", 2)

  async def _disk_full(storyboard_id: str) -> None:
    raise OSError("disk full")

  monkeypatch.setattr(runtime.storyboards, "get_storyboard", _disk_full)
  with pytest.raises(OSError):
    await runtime.engine.run_generation("sb-1", session_id)

  session = runtime.sessions.require(session_id)
  assert session.status == "failed"
  assert session.errors[-1].error == "disk full"
  assert not runtime.engine.is_running("sb-1")
