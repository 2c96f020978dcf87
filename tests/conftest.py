"""Test configuration for importing the application package."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
for path in (ROOT, TESTS_DIR):
  if str(path) not in sys.path:
    sys.path.insert(0, str(path))

# Settings are read once per process; keep them away from the developer's data dir.
os.environ.setdefault("GOTHAM_DATA_DIR", tempfile.mkdtemp(prefix="gotham-tests-"))
os.environ["GOTHAM_RECOVERY_ENABLED"] = "0"
os.environ["GOTHAM_AI_PROVIDER"] = "openai"

from dataclasses import replace  # noqa: E402

import pytest  # noqa: E402
from fakes import ScriptedGenerator, make_limiter  # noqa: E402

from gotham.ai.providers.registry import GeneratorRegistry  # noqa: E402
from gotham.config import Settings, get_settings  # noqa: E402
from gotham.services.runtime import Runtime, build_runtime  # noqa: E402
from gotham.storage.assets_repo import FileAssetsRepository  # noqa: E402
from gotham.storage.file_storyboards_repo import FileStoryboardsRepository  # noqa: E402
from gotham.storage.locks import StoryboardLocks  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
  return replace(get_settings(), data_dir=str(tmp_path), lock_poll_interval_seconds=0.001, lock_timeout_seconds=2.0, recovery_enabled=False, sse_keepalive_seconds=5.0)


@pytest.fixture
def assets(tmp_path: Path) -> FileAssetsRepository:
  return FileAssetsRepository(tmp_path / "assets")


@pytest.fixture
def store(tmp_path: Path, assets: FileAssetsRepository) -> FileStoryboardsRepository:
  return FileStoryboardsRepository(tmp_path / "storyboards", assets=assets, locks=StoryboardLocks(poll_interval_seconds=0.001, timeout_seconds=2.0))


@pytest.fixture
def generator() -> ScriptedGenerator:
  return ScriptedGenerator()


@pytest.fixture
def runtime(settings: Settings, store: FileStoryboardsRepository, assets: FileAssetsRepository, generator: ScriptedGenerator) -> Runtime:
  registry = GeneratorRegistry({"openai": generator}, default_provider="openai")
  return build_runtime(settings, registry=registry, limiter=make_limiter(), storyboards=store, assets=assets)
