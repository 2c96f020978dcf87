"""Process-wide service graph shared by routes and the lifespan."""

from __future__ import annotations

from dataclasses import dataclass

from gotham.ai.planner import StoryboardPlanner
from gotham.ai.providers.registry import GeneratorRegistry, build_generator_registry
from gotham.ai.rate_limiter import RateLimiter
from gotham.config import Settings
from gotham.jobs.engine import GenerationEngine
from gotham.jobs.progress import ProgressBroadcaster
from gotham.jobs.recovery import RecoveryScanner
from gotham.jobs.sessions import SessionStore
from gotham.storage.assets_repo import AssetsRepository
from gotham.storage.factory import build_repositories
from gotham.storage.storyboards_repo import StoryboardsRepository


@dataclass
class Runtime:
  settings: Settings
  storyboards: StoryboardsRepository
  assets: AssetsRepository
  limiter: RateLimiter
  registry: GeneratorRegistry
  planner: StoryboardPlanner
  broadcaster: ProgressBroadcaster
  sessions: SessionStore
  engine: GenerationEngine
  recovery: RecoveryScanner


def build_runtime(settings: Settings, *, registry: GeneratorRegistry | None = None, limiter: RateLimiter | None = None, storyboards: StoryboardsRepository | None = None, assets: AssetsRepository | None = None) -> Runtime:
  """Wire every component; explicit arguments replace the settings-derived defaults."""
  if storyboards is None or assets is None:
    repos = build_repositories(settings)
    storyboards = storyboards or repos.storyboards
    assets = assets or repos.assets
  registry = registry or build_generator_registry(settings)
  limiter = limiter or RateLimiter.from_settings(settings)

  broadcaster = ProgressBroadcaster(queue_size=settings.sse_queue_size, keepalive_seconds=settings.sse_keepalive_seconds)
  sessions = SessionStore(broadcaster)
  engine = GenerationEngine(storyboards=storyboards, assets=assets, limiter=limiter, registry=registry, sessions=sessions, append_clip_max_attempts=settings.append_clip_max_attempts)
  recovery = RecoveryScanner(storyboards=storyboards, sessions=sessions, engine=engine, interval_seconds=settings.recovery_interval_seconds)
  return Runtime(
    settings=settings,
    storyboards=storyboards,
    assets=assets,
    limiter=limiter,
    registry=registry,
    planner=StoryboardPlanner(registry, limiter),
    broadcaster=broadcaster,
    sessions=sessions,
    engine=engine,
    recovery=recovery,
  )
