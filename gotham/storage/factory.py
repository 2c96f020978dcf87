"""Repository construction from settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from gotham.config import Settings
from gotham.storage.assets_repo import AssetsRepository, FileAssetsRepository
from gotham.storage.file_storyboards_repo import FileStoryboardsRepository
from gotham.storage.locks import StoryboardLocks
from gotham.storage.storyboards_repo import StoryboardsRepository


@dataclass(frozen=True)
class Repositories:
  storyboards: StoryboardsRepository
  assets: AssetsRepository


def storyboards_dir(settings: Settings) -> Path:
  return Path(settings.data_dir) / "storyboards"


def assets_dir(settings: Settings) -> Path:
  return Path(settings.data_dir) / "assets"


def ensure_data_dirs(settings: Settings) -> None:
  """Create the on-disk layout under the data directory."""
  for directory in (storyboards_dir(settings), assets_dir(settings)):
    directory.mkdir(parents=True, exist_ok=True)


def build_repositories(settings: Settings) -> Repositories:
  """Return the file-backed repositories for the configured data directory."""
  assets = FileAssetsRepository(assets_dir(settings))
  locks = StoryboardLocks(poll_interval_seconds=settings.lock_poll_interval_seconds, timeout_seconds=settings.lock_timeout_seconds)
  storyboards = FileStoryboardsRepository(storyboards_dir(settings), assets=assets, locks=locks)
  return Repositories(storyboards=storyboards, assets=assets)
