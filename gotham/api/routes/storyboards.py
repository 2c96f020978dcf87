import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from gotham.api.deps import get_runtime
from gotham.api.models import SaveStoryboardRequest
from gotham.core.json import MsgspecJSONResponse
from gotham.services import generation as generation_service
from gotham.services.runtime import Runtime

router = APIRouter()
logger = logging.getLogger("gotham.api.routes.storyboards")


@router.get("/list")
async def list_storyboards(runtime: Runtime = Depends(get_runtime)) -> MsgspecJSONResponse:  # noqa: B008
  """List storyboard summaries, newest first."""
  summaries = await runtime.storyboards.list_storyboards()
  return MsgspecJSONResponse(content={"success": True, "storyboards": summaries})


@router.post("/save")
async def save_storyboard(request: SaveStoryboardRequest, runtime: Runtime = Depends(get_runtime)) -> MsgspecJSONResponse:  # noqa: B008
  """Save the editor's full copy of a storyboard."""
  storyboard = await generation_service.save_storyboard(runtime, request)
  return MsgspecJSONResponse(content={"success": True, "id": storyboard.id, "storyboard": storyboard, "message": f"Storyboard '{storyboard.name}' saved successfully"})


@router.get("/rate-limits")
async def rate_limits(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:  # noqa: B008
  """Return the current bucket state per provider."""
  return {"configuredProviders": runtime.registry.configured, "defaultProvider": runtime.registry.default_provider, "buckets": runtime.limiter.snapshots()}


@router.get("/clip-animation/{asset_id}")
async def get_clip_animation(asset_id: str, runtime: Runtime = Depends(get_runtime)) -> MsgspecJSONResponse:  # noqa: B008
  """Fetch the full animation behind a clip's asset id."""
  asset = await runtime.assets.get(asset_id)
  if asset is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Animation not found")
  return MsgspecJSONResponse(content={"success": True, "animation": asset})


@router.get("/{storyboard_id}")
async def get_storyboard(storyboard_id: str, runtime: Runtime = Depends(get_runtime)) -> MsgspecJSONResponse:  # noqa: B008
  storyboard = await runtime.storyboards.get_storyboard(storyboard_id)
  if storyboard is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Storyboard not found")
  return MsgspecJSONResponse(content={"success": True, "storyboard": storyboard})


@router.delete("/{storyboard_id}")
async def delete_storyboard(storyboard_id: str, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:  # noqa: B008
  """Delete a storyboard record; generated assets are kept."""
  deleted = await runtime.storyboards.delete_storyboard(storyboard_id)
  if not deleted:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Storyboard not found")
  session = runtime.sessions.find_by_storyboard(storyboard_id)
  if session is not None:
    runtime.sessions.cleanup(session.id)
  logger.info("Deleted storyboard %s", storyboard_id)
  return {"success": True}
