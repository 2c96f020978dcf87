import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from gotham.api.deps import get_runtime
from gotham.api.models import GenerateSceneRequest, InitializeGenerationRequest, ProgressSnapshot, SessionErrorModel, StartGenerationResponse
from gotham.core.json import MsgspecJSONResponse
from gotham.services import generation as generation_service
from gotham.services.runtime import Runtime

router = APIRouter()
logger = logging.getLogger("gotham.api.routes.generation")

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


@router.post("/generate/initialize")
async def initialize_generation(
  request: InitializeGenerationRequest,
  runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> MsgspecJSONResponse:
  """Plan a storyboard and open a generation session for it."""
  session, storyboard = await generation_service.initialize_generation(runtime, request)
  return MsgspecJSONResponse(content={"success": True, "sessionId": session.id, "storyboard": storyboard})


@router.get("/generate/{session_id}/progress")
async def stream_progress(
  session_id: str,
  runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> StreamingResponse:
  """Stream progress events; the first event is the current snapshot."""
  session, subscription = runtime.sessions.subscribe(session_id)
  return StreamingResponse(runtime.broadcaster.stream(session, subscription), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/generate/{session_id}/start", response_model=StartGenerationResponse)
async def start_generation(
  session_id: str,
  runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> StartGenerationResponse:
  """Generate every missing scene and respond once the batch settles."""
  outcome = await generation_service.start_generation(runtime, session_id)
  session = runtime.sessions.require(session_id)
  return StartGenerationResponse(
    success=True,
    session_id=session.id,
    storyboard_id=outcome.storyboard_id,
    status=outcome.status,
    progress=ProgressSnapshot(current=session.current, total=session.total, status=session.status),
    errors=[SessionErrorModel(scene=error.scene, error=error.error, kind=error.kind) for error in outcome.errors],
    paused_scene_index=outcome.paused_scene_index,
  )


@router.delete("/generate/{session_id}")
async def cleanup_session(
  session_id: str,
  runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> dict[str, Any]:
  """Close every progress stream of a session and forget it."""
  if not runtime.sessions.cleanup(session_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
  return {"success": True, "message": "Session cleaned up"}


@router.post("/generate-scene")
async def generate_scene(
  request: GenerateSceneRequest,
  runtime: Runtime = Depends(get_runtime),  # noqa: B008
) -> MsgspecJSONResponse:
  """Regenerate one scene of a stored storyboard and replace its clip."""
  clip, storyboard = await generation_service.regenerate_scene(runtime, request)
  return MsgspecJSONResponse(content={"success": True, "clip": clip, "storyboard": storyboard})
