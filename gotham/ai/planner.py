"""Storyboard planning: split a movie idea into scenes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from gotham.ai.errors import GenerationError, RateLimitExceeded
from gotham.ai.json_parser import parse_json_with_fallback
from gotham.ai.prompts import PLANNER_SYSTEM_PROMPT
from gotham.ai.providers.registry import GeneratorRegistry
from gotham.ai.rate_limiter import RateLimiter
from gotham.jobs.errors import PlanningError
from gotham.jobs.models import DEFAULT_SCENE_DURATION_SECONDS, ScenePlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoryboardPlan:
  title: str
  description: str
  scenes: list[ScenePlan]


def _coerce_duration(raw: Any) -> float:
  try:
    value = float(raw)
  except (TypeError, ValueError):
    return DEFAULT_SCENE_DURATION_SECONDS
  return value if value > 0 else DEFAULT_SCENE_DURATION_SECONDS


def normalize_plan(payload: Any, *, prompt: str, scene_count: int) -> StoryboardPlan:
  """Fill defaults into a decoded plan and truncate it to ``scene_count`` scenes."""
  if not isinstance(payload, dict):
    raise PlanningError("Storyboard plan must be a JSON object.")

  raw_scenes = payload.get("scenes")
  if not isinstance(raw_scenes, list) or not raw_scenes:
    raise PlanningError("Storyboard plan did not contain any scenes.")

  scenes: list[ScenePlan] = []
  for index, raw in enumerate(raw_scenes[:scene_count]):
    scene = raw if isinstance(raw, dict) else {"description": str(raw)}
    description = str(scene.get("description") or f"Scene {index + 1}")
    scenes.append(
      ScenePlan(
        id=str(scene.get("id") or f"scene{index + 1}"),
        description=description,
        prompt=str(scene.get("svgPrompt") or scene.get("prompt") or f"Create an animated scene showing: {description}"),
        target_duration_seconds=_coerce_duration(scene.get("duration")),
      )
    )

  title = str(payload.get("title") or prompt[:60]).strip()
  description = str(payload.get("description") or prompt).strip()
  return StoryboardPlan(title=title, description=description, scenes=scenes)


class StoryboardPlanner:
  """Ask a provider for a scene plan, through the shared rate limiter."""

  def __init__(self, registry: GeneratorRegistry, limiter: RateLimiter) -> None:
    self._registry = registry
    self._limiter = limiter

  async def plan(self, prompt: str, *, provider: str, scene_count: int) -> StoryboardPlan:
    generator = self._registry.get(provider)
    system = PLANNER_SYSTEM_PROMPT.format(scene_count=scene_count)

    try:
      reply = await self._limiter.execute(lambda: generator.complete(prompt, system=system), provider)
    except (GenerationError, RateLimitExceeded) as exc:
      logger.warning("Storyboard planning failed via %s: %s", provider, exc)
      raise PlanningError(f"Storyboard planning failed: {exc}") from exc

    try:
      payload = parse_json_with_fallback(reply)
    except json.JSONDecodeError as exc:
      logger.warning("Storyboard plan from %s was not valid JSON: %s", provider, exc)
      raise PlanningError("Storyboard plan was not valid JSON.") from exc

    plan = normalize_plan(payload, prompt=prompt, scene_count=scene_count)
    logger.info("Planned storyboard '%s' with %d scenes via %s", plan.title, len(plan.scenes), provider)
    return plan
