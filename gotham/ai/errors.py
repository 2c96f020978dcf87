"""Structured error kinds for content generation failures."""

from __future__ import annotations

from enum import StrEnum

_THROTTLE_STATUS_CODES: frozenset[int] = frozenset({429, 503, 529})
_THROTTLE_ERROR_CODES: frozenset[str] = frozenset({"rate_limit_exceeded", "rate_limit_error", "overloaded_error", "resource_exhausted", "insufficient_quota"})


class ErrorKind(StrEnum):
  RECOVERABLE_THROTTLE = "recoverable_throttle"
  PERMANENT_FAILURE = "permanent_failure"


class GenerationError(RuntimeError):
  """Raised by generator adapters with a classified failure kind."""

  def __init__(self, message: str, *, kind: ErrorKind = ErrorKind.PERMANENT_FAILURE, provider: str | None = None, status_code: int | None = None) -> None:
    super().__init__(message)
    self.kind = kind
    self.provider = provider
    self.status_code = status_code

  @property
  def is_throttle(self) -> bool:
    return self.kind is ErrorKind.RECOVERABLE_THROTTLE


class ProviderUnavailableError(GenerationError):
  """Raised when a provider has no configured credentials."""

  def __init__(self, provider: str) -> None:
    super().__init__(f"Provider '{provider}' is not configured.", kind=ErrorKind.PERMANENT_FAILURE, provider=provider)


class RateLimitExceeded(RuntimeError):
  """Raised when the limiter cannot admit a request within its attempt budget."""

  def __init__(self, provider: str, attempts: int) -> None:
    super().__init__(f"Rate limit exceeded for {provider} after {attempts} attempts")
    self.provider = provider
    self.attempts = attempts


def _status_code_of(exc: BaseException) -> int | None:
  for attr in ("status_code", "code", "status"):
    value = getattr(exc, attr, None)
    if isinstance(value, int):
      return value
  response = getattr(exc, "response", None)
  value = getattr(response, "status_code", None)
  return value if isinstance(value, int) else None


def _error_code_of(exc: BaseException) -> str | None:
  # OpenAI and Anthropic expose a string code/type on the error body.
  for attr in ("code", "type", "status"):
    value = getattr(exc, attr, None)
    if isinstance(value, str):
      return value.lower()
  body = getattr(exc, "body", None)
  if isinstance(body, dict):
    error = body.get("error", body)
    if isinstance(error, dict):
      value = error.get("type") or error.get("code") or error.get("status")
      if isinstance(value, str):
        return value.lower()
  return None


def classify_exception(exc: BaseException) -> ErrorKind:
  """Classify any exception raised during a generation call."""
  if isinstance(exc, GenerationError):
    return exc.kind
  if isinstance(exc, RateLimitExceeded):
    return ErrorKind.RECOVERABLE_THROTTLE
  status_code = _status_code_of(exc)
  if status_code in _THROTTLE_STATUS_CODES:
    return ErrorKind.RECOVERABLE_THROTTLE
  if _error_code_of(exc) in _THROTTLE_ERROR_CODES:
    return ErrorKind.RECOVERABLE_THROTTLE
  return ErrorKind.PERMANENT_FAILURE


def is_throttle_error(exc: BaseException) -> bool:
  return classify_exception(exc) is ErrorKind.RECOVERABLE_THROTTLE


def to_generation_error(exc: BaseException, *, provider: str) -> GenerationError:
  """Wrap an SDK exception into a GenerationError preserving its classification."""
  if isinstance(exc, GenerationError):
    return exc
  return GenerationError(f"{provider} request failed: {exc}", kind=classify_exception(exc), provider=provider, status_code=_status_code_of(exc))
