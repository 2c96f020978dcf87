"""Storage interface for storyboards."""

from __future__ import annotations

from typing import Any, Protocol

from gotham.jobs.models import Clip, Storyboard, StoryboardSummary


class StoryboardsRepository(Protocol):
  """Repository contract for storyboard persistence."""

  async def save_storyboard(self, storyboard: Storyboard) -> Storyboard:
    """Persist a whole storyboard and return the stored version."""

  async def get_storyboard(self, storyboard_id: str) -> Storyboard | None:
    """Fetch a storyboard with clips sorted by order."""

  async def append_clip(self, storyboard_id: str, clip: Clip) -> Storyboard:
    """Merge one clip by order and recompute completed scenes."""

  async def update_generation_status(self, storyboard_id: str, **fields: Any) -> Storyboard:
    """Apply field updates to the generation status block."""

  async def list_storyboards(self) -> list[StoryboardSummary]:
    """Return summaries sorted by most recent update."""

  async def delete_storyboard(self, storyboard_id: str) -> bool:
    """Remove a storyboard; return False when it did not exist."""
