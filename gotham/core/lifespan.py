import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gotham.core.logging import initialize_logging
from gotham.services.runtime import build_runtime
from gotham.storage.factory import ensure_data_dirs


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Build the service graph, start recovery, and stop it on shutdown."""
  from gotham.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("gotham.core.lifespan")

  initialize_logging(settings)
  ensure_data_dirs(settings)

  runtime = build_runtime(settings)
  app.state.runtime = runtime
  logger.info("Startup complete - data_dir=%s providers=%s", settings.data_dir, ", ".join(runtime.registry.configured) or "<none>")

  if settings.recovery_enabled:
    runtime.recovery.start()
    logger.info("Recovery scanner started (interval %.0fs)", settings.recovery_interval_seconds)

  try:
    yield
  finally:
    await runtime.recovery.stop()
    logger.info("Shutdown complete")
