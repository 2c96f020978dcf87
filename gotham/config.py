"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from gotham.ai.providers.base import normalize_provider
from gotham.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class ProviderSettings:
  """Per-provider credentials, model and throughput budget."""

  provider: str
  api_key: str | None
  model: str
  max_output_tokens: int
  temperature: float
  tokens_per_minute: int
  tokens_per_request: int
  max_concurrent_requests: int


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Gotham generation service."""

  environment: str
  debug: bool
  data_dir: str
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  default_provider: str
  default_scene_count: int
  max_scene_count: int
  providers: dict[str, ProviderSettings] = field(hash=False)
  limiter_base_delay_seconds: float
  limiter_max_delay_seconds: float
  limiter_max_attempts: int
  lock_poll_interval_seconds: float
  lock_timeout_seconds: float
  append_clip_max_attempts: int
  recovery_enabled: bool
  recovery_interval_seconds: float
  sse_keepalive_seconds: float
  sse_queue_size: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  # Local development defaults to the Vite dev server.
  if not raw:
    return ("http://localhost:5173",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("GOTHAM_ALLOWED_ORIGINS must include at least one origin.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _first_env(*names: str) -> str | None:
  """Return the first non-empty environment value among legacy aliases."""
  for name in names:
    value = _optional_str(os.getenv(name))
    if value is not None:
      return value
  return None


def _positive_int(raw: str | None, default: int, name: str) -> int:
  value = int(raw) if raw not in (None, "") else default
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(raw: str | None, default: float, name: str) -> float:
  value = float(raw) if raw not in (None, "") else default
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _load_provider(provider: str, *, env_prefixes: tuple[str, ...], key_names: tuple[str, ...], default_model: str, default_tpm: int, default_tpr: int, default_concurrency: int, default_max_tokens: int) -> ProviderSettings:
  """Build one provider block, honoring legacy env prefixes (CLAUDE_, GEMINI_)."""

  def _lookup(suffix: str) -> str | None:
    return _first_env(*(f"{prefix}_{suffix}" for prefix in env_prefixes))

  prefix = env_prefixes[0]
  tokens_per_minute = _positive_int(_lookup("RATE_LIMIT_TOKENS_PER_MINUTE"), default_tpm, f"{prefix}_RATE_LIMIT_TOKENS_PER_MINUTE")
  tokens_per_request = _positive_int(_lookup("RATE_LIMIT_TOKENS_PER_REQUEST"), default_tpr, f"{prefix}_RATE_LIMIT_TOKENS_PER_REQUEST")
  if tokens_per_request > tokens_per_minute:
    raise ValueError(f"{prefix}_RATE_LIMIT_TOKENS_PER_REQUEST must not exceed the per-minute budget.")

  return ProviderSettings(
    provider=provider,
    api_key=_first_env(*key_names),
    model=_lookup("MODEL") or default_model,
    max_output_tokens=_positive_int(_lookup("MAX_TOKENS"), default_max_tokens, f"{prefix}_MAX_TOKENS"),
    temperature=float(_lookup("TEMPERATURE") or "0.7"),
    tokens_per_minute=tokens_per_minute,
    tokens_per_request=tokens_per_request,
    max_concurrent_requests=_positive_int(_lookup("RATE_LIMIT_MAX_CONCURRENT_REQUESTS"), default_concurrency, f"{prefix}_RATE_LIMIT_MAX_CONCURRENT_REQUESTS"),
  )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("GOTHAM_ENV", "development").lower()
  debug = _parse_bool(os.getenv("GOTHAM_DEBUG"))
  data_dir = (os.getenv("GOTHAM_DATA_DIR") or "./output").strip()

  log_max_bytes = _positive_int(os.getenv("GOTHAM_LOG_MAX_BYTES"), 5242880, "GOTHAM_LOG_MAX_BYTES")
  log_backup_count = int(os.getenv("GOTHAM_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("GOTHAM_LOG_BACKUP_COUNT must be zero or a positive integer.")

  providers = {
    "openai": _load_provider("openai", env_prefixes=("OPENAI",), key_names=("OPENAI_API_KEY",), default_model="gpt-4o", default_tpm=10000, default_tpr=2000, default_concurrency=10, default_max_tokens=12000),
    "anthropic": _load_provider("anthropic", env_prefixes=("ANTHROPIC", "CLAUDE"), key_names=("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"), default_model="claude-sonnet-4-5", default_tpm=8000, default_tpr=1600, default_concurrency=10, default_max_tokens=8192),
    "google": _load_provider("google", env_prefixes=("GOOGLE", "GEMINI"), key_names=("GOOGLE_API_KEY", "GEMINI_API_KEY"), default_model="gemini-2.5-flash", default_tpm=10000, default_tpr=2000, default_concurrency=10, default_max_tokens=12000),
  }

  # Resolve the default provider through the alias table (claude, gemini, ...).
  raw_provider = os.getenv("GOTHAM_AI_PROVIDER") or os.getenv("AI_PROVIDER") or "openai"
  default_provider = normalize_provider(raw_provider)
  if default_provider is None:
    raise ValueError(f"GOTHAM_AI_PROVIDER has an unknown provider: {raw_provider!r}.")

  max_scene_count = _positive_int(os.getenv("GOTHAM_MAX_SCENE_COUNT"), 12, "GOTHAM_MAX_SCENE_COUNT")
  default_scene_count = _positive_int(os.getenv("GOTHAM_DEFAULT_SCENE_COUNT"), 5, "GOTHAM_DEFAULT_SCENE_COUNT")
  if default_scene_count > max_scene_count:
    raise ValueError("GOTHAM_DEFAULT_SCENE_COUNT must not exceed GOTHAM_MAX_SCENE_COUNT.")

  return Settings(
    environment=environment,
    debug=debug,
    data_dir=data_dir,
    allowed_origins=_parse_origins(os.getenv("GOTHAM_ALLOWED_ORIGINS")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("GOTHAM_LOG_HTTP_4XX")),
    default_provider=default_provider.value,
    default_scene_count=default_scene_count,
    max_scene_count=max_scene_count,
    providers=providers,
    limiter_base_delay_seconds=_positive_float(os.getenv("GOTHAM_LIMITER_BASE_DELAY_SECONDS"), 1.0, "GOTHAM_LIMITER_BASE_DELAY_SECONDS"),
    limiter_max_delay_seconds=_positive_float(os.getenv("GOTHAM_LIMITER_MAX_DELAY_SECONDS"), 30.0, "GOTHAM_LIMITER_MAX_DELAY_SECONDS"),
    limiter_max_attempts=_positive_int(os.getenv("GOTHAM_LIMITER_MAX_ATTEMPTS"), 10, "GOTHAM_LIMITER_MAX_ATTEMPTS"),
    lock_poll_interval_seconds=_positive_float(os.getenv("GOTHAM_LOCK_POLL_INTERVAL_SECONDS"), 0.05, "GOTHAM_LOCK_POLL_INTERVAL_SECONDS"),
    lock_timeout_seconds=_positive_float(os.getenv("GOTHAM_LOCK_TIMEOUT_SECONDS"), 10.0, "GOTHAM_LOCK_TIMEOUT_SECONDS"),
    append_clip_max_attempts=_positive_int(os.getenv("GOTHAM_APPEND_CLIP_MAX_ATTEMPTS"), 3, "GOTHAM_APPEND_CLIP_MAX_ATTEMPTS"),
    recovery_enabled=_parse_bool(os.getenv("GOTHAM_RECOVERY_ENABLED"), default=True),
    recovery_interval_seconds=_positive_float(os.getenv("GOTHAM_RECOVERY_INTERVAL_SECONDS"), 300.0, "GOTHAM_RECOVERY_INTERVAL_SECONDS"),
    sse_keepalive_seconds=_positive_float(os.getenv("GOTHAM_SSE_KEEPALIVE_SECONDS"), 15.0, "GOTHAM_SSE_KEEPALIVE_SECONDS"),
    sse_queue_size=_positive_int(os.getenv("GOTHAM_SSE_QUEUE_SIZE"), 100, "GOTHAM_SSE_QUEUE_SIZE"),
  )
