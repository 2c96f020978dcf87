import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from gotham.ai.errors import ErrorKind, GenerationError, ProviderUnavailableError
from gotham.core.json import MsgspecJSONResponse
from gotham.jobs.errors import GenerationEngineError
from gotham.storage.locks import LockTimeoutError

logger = logging.getLogger("uvicorn.error")


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  payload: dict[str, Any] = {"success": False, "detail": detail}
  if request_id:
    payload["requestId"] = request_id
  return payload


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx
    sanitized.append(_coerce_json_safe(scrubbed))
  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> MsgspecJSONResponse:
  """Catch-all for unhandled errors."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return MsgspecJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> MsgspecJSONResponse:
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return MsgspecJSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> MsgspecJSONResponse:
  """Handle HTTPExceptions without leaking 5xx details."""
  from gotham.config import get_settings

  settings = get_settings()
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return MsgspecJSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _coerce_json_safe(exc.detail))

  return MsgspecJSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=exc.headers)


async def engine_exception_handler(request: Request, exc: GenerationEngineError) -> MsgspecJSONResponse:
  """Map fatal orchestration errors to their HTTP status."""
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("Generation failure request_id=%s path=%s error_type=%s error=%s", request_id, request.url.path, type(exc).__name__, exc)
  else:
    logger.info("Generation request rejected request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return MsgspecJSONResponse(status_code=exc.status_code, content=_error_payload(str(exc), request_id=request_id))


async def provider_exception_handler(request: Request, exc: GenerationError) -> MsgspecJSONResponse:
  """Map a provider failure to an HTTP status; unknown failures count as upstream outages."""
  request_id = _request_id(request)
  if isinstance(exc, ProviderUnavailableError):
    status_code = status.HTTP_400_BAD_REQUEST
  elif exc.kind is ErrorKind.RECOVERABLE_THROTTLE:
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
  else:
    status_code = status.HTTP_502_BAD_GATEWAY
  logger.warning("Provider failure request_id=%s path=%s provider=%s kind=%s error=%s", request_id, request.url.path, exc.provider, exc.kind, exc)
  return MsgspecJSONResponse(status_code=status_code, content=_error_payload(str(exc), request_id=request_id))


async def lock_timeout_exception_handler(request: Request, exc: LockTimeoutError) -> MsgspecJSONResponse:
  request_id = _request_id(request)
  logger.warning("Storyboard busy request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return MsgspecJSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_payload("Storyboard is busy, retry shortly", request_id=request_id), headers={"Retry-After": "1"})
