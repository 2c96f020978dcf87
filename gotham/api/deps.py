"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from gotham.services.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
  """Return the service graph built during startup."""
  runtime = getattr(request.app.state, "runtime", None)
  if runtime is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up.")
  return runtime
