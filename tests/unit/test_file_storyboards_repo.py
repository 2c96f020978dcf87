from __future__ import annotations

import asyncio
from pathlib import Path

import msgspec
import pytest
from fakes import make_clip, make_storyboard, put_asset

from gotham.jobs.errors import StoryboardNotFoundError
from gotham.storage import atomic
from gotham.storage.assets_repo import FileAssetsRepository
from gotham.storage.file_storyboards_repo import FileStoryboardsRepository


@pytest.mark.anyio
async def test_round_trip_returns_clips_sorted_by_order(store: FileStoryboardsRepository, assets: FileAssetsRepository) -> None:
  for order in (0, 1, 2):
    await put_asset(assets, f"asset-{order}")
  storyboard = make_storyboard(clips=[make_clip(2), make_clip(0), make_clip(1)])

  await store.save_storyboard(storyboard)
  loaded = await store.get_storyboard("sb-1")

  assert loaded is not None
  assert [clip.order for clip in loaded.clips] == [0, 1, 2]
  assert [clip.asset_id for clip in loaded.clips] == ["asset-0", "asset-1", "asset-2"]
  assert loaded.validation_results == []


@pytest.mark.anyio
async def test_persisted_json_uses_camel_case(store: FileStoryboardsRepository, tmp_path: Path) -> None:
  await store.save_storyboard(make_storyboard())

  raw = msgspec.json.decode((tmp_path / "storyboards" / "sb-1.json").read_bytes())

  assert "originalScenes" in raw
  assert raw["generationStatus"]["totalScenes"] == 3


@pytest.mark.anyio
async def test_concurrent_appends_keep_every_clip(store: FileStoryboardsRepository, assets: FileAssetsRepository) -> None:
  count = 20
  await store.save_storyboard(make_storyboard(scene_count=count))
  for order in range(count):
    await put_asset(assets, f"asset-{order}")

  await asyncio.gather(*(store.append_clip("sb-1", make_clip(order)) for order in range(count)))
  loaded = await store.get_storyboard("sb-1")

  assert loaded is not None
  assert [clip.order for clip in loaded.clips] == list(range(count))
  assert {clip.asset_id for clip in loaded.clips} == {f"asset-{order}" for order in range(count)}
  assert loaded.generation_status.completed_scenes == count
  assert loaded.validation_results == []


@pytest.mark.anyio
async def test_append_replaces_clip_with_same_order(store: FileStoryboardsRepository, assets: FileAssetsRepository) -> None:
  await put_asset(assets, "asset-0")
  await put_asset(assets, "asset-new")
  await store.save_storyboard(make_storyboard())

  await store.append_clip("sb-1", make_clip(0))
  stored = await store.append_clip("sb-1", make_clip(0, asset_id="asset-new"))

  assert len(stored.clips) == 1
  assert stored.clips[0].asset_id == "asset-new"
  assert stored.generation_status.completed_scenes == 1


@pytest.mark.anyio
async def test_append_to_missing_storyboard_raises(store: FileStoryboardsRepository) -> None:
  with pytest.raises(StoryboardNotFoundError):
    await store.append_clip("missing", make_clip(0))


@pytest.mark.anyio
async def test_missing_asset_is_recorded_without_blocking_the_write(store: FileStoryboardsRepository) -> None:
  await store.save_storyboard(make_storyboard())

  stored = await store.append_clip("sb-1", make_clip(1, asset_id="ghost"))

  assert [clip.order for clip in stored.clips] == [1]
  assert [(issue.code, issue.asset_id) for issue in stored.validation_results] == [("asset_missing", "ghost")]


@pytest.mark.anyio
async def test_interrupted_rename_keeps_previous_record(store: FileStoryboardsRepository, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
  await store.save_storyboard(make_storyboard())

  def _crash(src: object, dst: object) -> None:
    raise OSError("disk went away")

  monkeypatch.setattr(atomic.os, "replace", _crash)
  changed = make_storyboard()
  changed.name = "Renamed"
  with pytest.raises(OSError):
    await store.save_storyboard(changed)
  monkeypatch.undo()

  loaded = await store.get_storyboard("sb-1")
  assert loaded is not None
  assert loaded.name == "Paper Boat"
  assert list((tmp_path / "storyboards").glob("*.tmp")) == []
  # The lock is released even though the write failed.
  assert not store.locks.is_held("sb-1")


@pytest.mark.anyio
async def test_verification_failure_keeps_backup_and_records_diagnostic(store: FileStoryboardsRepository, assets: FileAssetsRepository, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
  await put_asset(assets, "asset-0")
  await store.save_storyboard(make_storyboard())

  monkeypatch.setattr(store, "_verify_written", lambda storyboard: "clip count mismatch: expected 1, found 0")
  stored = await store.append_clip("sb-1", make_clip(0))

  assert [issue.code for issue in stored.validation_results] == ["write_verification_failed"]
  backup = msgspec.json.decode((tmp_path / "storyboards" / "sb-1.json.bak").read_bytes())
  assert backup["clips"] == []
  monkeypatch.undo()

  loaded = await store.get_storyboard("sb-1")
  assert loaded is not None
  assert [clip.order for clip in loaded.clips] == [0]


@pytest.mark.anyio
async def test_update_generation_status_merges_fields(store: FileStoryboardsRepository) -> None:
  await store.save_storyboard(make_storyboard())

  stored = await store.update_generation_status("sb-1", status="paused_rate_limited", paused_scene_index=1, paused_reason="429")

  assert stored.generation_status.status == "paused_rate_limited"
  assert stored.generation_status.paused_scene_index == 1
  assert stored.generation_status.total_scenes == 3


@pytest.mark.anyio
async def test_list_is_newest_first_and_skips_corrupt_files(store: FileStoryboardsRepository, tmp_path: Path) -> None:
  await store.save_storyboard(make_storyboard("older"))
  await asyncio.sleep(0.01)
  await store.save_storyboard(make_storyboard("newer"))
  (tmp_path / "storyboards" / "broken.json").write_text("{not json", encoding="utf-8")

  summaries = await store.list_storyboards()

  assert [summary.id for summary in summaries] == ["newer", "older"]
  assert summaries[0].total_scenes == 3


@pytest.mark.anyio
async def test_delete_removes_record(store: FileStoryboardsRepository) -> None:
  await store.save_storyboard(make_storyboard())

  assert await store.delete_storyboard("sb-1") is True
  assert await store.get_storyboard("sb-1") is None
  assert await store.delete_storyboard("sb-1") is False


@pytest.mark.anyio
async def test_path_like_ids_are_not_resolved(store: FileStoryboardsRepository) -> None:
  assert await store.get_storyboard("../etc/passwd") is None


@pytest.mark.anyio
async def test_corrupt_asset_is_recorded_without_blocking_the_save(store: FileStoryboardsRepository, assets: FileAssetsRepository, tmp_path: Path) -> None:
  await put_asset(assets, "asset-1")
  (tmp_path / "assets" / "asset-0.json.br").write_bytes(b"not brotli at all")

  stored = await store.save_storyboard(make_storyboard(clips=[make_clip(0), make_clip(1)]))

  assert [clip.order for clip in stored.clips] == [0, 1]
  assert [(issue.code, issue.asset_id) for issue in stored.validation_results] == [("asset_missing", "asset-0")]
  loaded = await store.get_storyboard("sb-1")
  assert loaded is not None
  assert [clip.asset_id for clip in loaded.clips] == ["asset-0", "asset-1"]
