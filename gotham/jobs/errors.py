"""Domain exceptions for storyboard generation."""

from __future__ import annotations


class GenerationEngineError(RuntimeError):
  """Base class for fatal orchestration errors."""

  status_code = 500


class StoryboardNotFoundError(GenerationEngineError):
  status_code = 404

  def __init__(self, storyboard_id: str) -> None:
    super().__init__(f"Storyboard {storyboard_id} not found")
    self.storyboard_id = storyboard_id


class MissingScenePlanError(GenerationEngineError):
  status_code = 500

  def __init__(self, storyboard_id: str) -> None:
    super().__init__(f"Storyboard {storyboard_id} has no scenes to generate")
    self.storyboard_id = storyboard_id


class SessionNotFoundError(GenerationEngineError):
  status_code = 404

  def __init__(self, session_id: str) -> None:
    super().__init__(f"Session {session_id} not found")
    self.session_id = session_id


class PlanningError(GenerationEngineError):
  """Raised when a storyboard plan cannot be produced."""

  status_code = 503


class GenerationInProgressError(GenerationEngineError):
  """Raised when a storyboard already has a generation run in this process."""

  status_code = 409

  def __init__(self, storyboard_id: str, session_id: str) -> None:
    super().__init__(f"Storyboard {storyboard_id} is already being generated by session {session_id}")
    self.storyboard_id = storyboard_id
    self.session_id = session_id


class SceneIndexError(GenerationEngineError):
  status_code = 400

  def __init__(self, storyboard_id: str, scene_index: int, scene_count: int) -> None:
    super().__init__(f"Scene index {scene_index} is out of range for storyboard {storyboard_id} ({scene_count} scenes)")
    self.storyboard_id = storyboard_id
    self.scene_index = scene_index
