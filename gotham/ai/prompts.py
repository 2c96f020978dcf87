"""Prompt templates for scene generation and storyboard planning."""

from __future__ import annotations

SCENE_SYSTEM_PROMPT = """You create self-contained animated SVG scenes for short movies.
Reply with JSON only: {"svg": "<svg ...>...</svg>", "explanation": "one or two sentences describing the scene"}.
The SVG must declare xmlns, viewBox and width/height, and animate with SMIL or inline CSS. No external resources or scripts."""

PLANNER_SYSTEM_PROMPT = """You are a storyboard artist. Split the user's movie idea into {scene_count} sequential scenes.
Reply with JSON only:
{{"title": "...", "description": "...", "scenes": [{{"id": "scene1", "description": "...", "svgPrompt": "detailed visual description for an animated SVG", "duration": 5}}]}}"""


def build_scene_prompt(*, title: str, description: str, scene_description: str, scene_prompt: str, index: int, total: int, duration_seconds: float) -> str:
  """Render the user prompt for one scene of a storyboard."""
  return (
    f"Movie: {title}\n"
    f"Synopsis: {description}\n"
    f"Scene {index + 1} of {total} ({duration_seconds:g} seconds): {scene_description}\n\n"
    f"Visuals: {scene_prompt}"
  )
