from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel

MAX_PROMPT_CHARS = 2000
MAX_EXPLICIT_SCENES = 50


class SceneInput(BaseModel):
  """Caller-supplied scene that bypasses planning."""

  id: StrictStr | None = Field(default=None, min_length=1, max_length=64)
  description: StrictStr = Field(min_length=1, max_length=1000)
  prompt: StrictStr | None = Field(default=None, min_length=1, max_length=4000, description="Visual description used for the scene's animation.")
  duration: float | None = Field(default=None, gt=0, le=120, description="Target duration in seconds.")
  model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class InitializeGenerationRequest(BaseModel):
  """Request payload for creating a storyboard and its generation session."""

  prompt: StrictStr = Field(min_length=1, max_length=MAX_PROMPT_CHARS, description="Movie concept to storyboard.", examples=["A paper boat sails through a storm and finds a lighthouse"])
  provider: StrictStr | None = Field(default=None, description="Provider id or alias (openai, anthropic/claude, google/gemini).")
  scene_count: int | None = Field(default=None, ge=1, description="Number of scenes to plan.")
  scenes: list[SceneInput] | None = Field(default=None, min_length=1, max_length=MAX_EXPLICIT_SCENES, description="Explicit scenes; planning is skipped when given.")
  name: StrictStr | None = Field(default=None, min_length=1, max_length=200)
  model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class GenerateSceneRequest(BaseModel):
  """Regenerate one scene of an existing storyboard."""

  storyboard_id: StrictStr = Field(min_length=1, max_length=128)
  scene_index: int = Field(ge=0, description="Zero-based index into the storyboard's planned scenes.")
  prompt: StrictStr | None = Field(default=None, min_length=1, max_length=4000, description="Replaces the planned visual prompt for this scene.")
  provider: StrictStr | None = Field(default=None, description="Provider id or alias; defaults to the storyboard's provider.")
  model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class SavedScene(BaseModel):
  id: StrictStr = Field(min_length=1, max_length=64)
  description: StrictStr = Field(max_length=10_000)
  prompt: StrictStr = Field(max_length=10_000)
  target_duration_seconds: float = Field(default=5.0, gt=0)
  model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class SavedClip(BaseModel):
  """Clip as sent by the editor; inline markup and chat history are dropped."""

  id: StrictStr = Field(min_length=1, max_length=128)
  order: int = Field(ge=0)
  name: StrictStr = Field(max_length=200)
  prompt: StrictStr = ""
  duration_seconds: float = Field(default=5.0, gt=0)
  asset_id: StrictStr | None = None
  created_at: StrictStr | None = None
  provider: StrictStr | None = None
  model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class SaveStoryboardRequest(BaseModel):
  """Full storyboard save from the editor.

  Generation state is owned by the server and is never taken from the payload.
  """

  id: StrictStr | None = Field(default=None, min_length=1, max_length=128, description="Existing storyboard id; a new id is assigned when omitted.")
  name: StrictStr = Field(min_length=1, max_length=500)
  description: StrictStr = Field(default="", max_length=10_000)
  provider: StrictStr | None = None
  original_scenes: list[SavedScene] = Field(default_factory=list)
  clips: list[SavedClip] = Field(default_factory=list)
  model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class ProgressSnapshot(BaseModel):
  current: int
  total: int
  status: str


class SessionErrorModel(BaseModel):
  scene: int | None
  error: str
  kind: str


class StartGenerationResponse(BaseModel):
  success: bool
  session_id: str
  storyboard_id: str
  status: str
  progress: ProgressSnapshot
  errors: list[SessionErrorModel]
  paused_scene_index: int | None = None
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
