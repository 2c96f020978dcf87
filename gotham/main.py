from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from gotham.ai.errors import GenerationError
from gotham.api.routes import generation, storyboards
from gotham.config import get_settings
from gotham.core.exceptions import engine_exception_handler, global_exception_handler, http_exception_handler, lock_timeout_exception_handler, provider_exception_handler, request_validation_exception_handler
from gotham.core.json import MsgspecJSONResponse
from gotham.core.lifespan import lifespan
from gotham.core.middleware import RequestLoggingMiddleware
from gotham.jobs.errors import GenerationEngineError
from gotham.storage.locks import LockTimeoutError

settings = get_settings()

app = FastAPI(title="Gotham Engine", default_response_class=MsgspecJSONResponse, lifespan=lifespan)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type"], expose_headers=["content-length", "x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(GenerationEngineError, engine_exception_handler)
app.add_exception_handler(GenerationError, provider_exception_handler)
app.add_exception_handler(LockTimeoutError, lock_timeout_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(generation.router, prefix="/api/movie", tags=["generation"])
app.include_router(storyboards.router, prefix="/api/movie", tags=["storyboards"])
