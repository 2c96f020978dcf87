"""Construction of the provider adapter registry."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from gotham.ai.errors import ProviderUnavailableError
from gotham.ai.providers.anthropic_messages import AnthropicGenerator
from gotham.ai.providers.base import ContentGenerator, ProviderId, normalize_provider
from gotham.ai.providers.gemini import GeminiGenerator
from gotham.ai.providers.openai_chat import OpenAIGenerator
from gotham.config import ProviderSettings, Settings

logger = logging.getLogger(__name__)

_FACTORIES: dict[ProviderId, Callable[[ProviderSettings], ContentGenerator]] = {
  ProviderId.OPENAI: OpenAIGenerator,
  ProviderId.ANTHROPIC: AnthropicGenerator,
  ProviderId.GOOGLE: GeminiGenerator,
}


class GeneratorRegistry:
  """Lookup of configured generators by canonical provider id."""

  def __init__(self, generators: Mapping[str, ContentGenerator], *, default_provider: str) -> None:
    self._generators = dict(generators)
    self.default_provider = default_provider

  def resolve_provider(self, raw: str | None) -> str:
    """Return the canonical provider for a request, falling back to the default."""
    if raw is None or not raw.strip():
      return self.default_provider
    provider = normalize_provider(raw)
    if provider is None:
      raise ProviderUnavailableError(raw)
    return provider.value

  def get(self, provider: str) -> ContentGenerator:
    generator = self._generators.get(provider)
    if generator is None:
      raise ProviderUnavailableError(provider)
    return generator

  @property
  def configured(self) -> list[str]:
    return sorted(self._generators)


def build_generator_registry(settings: Settings) -> GeneratorRegistry:
  """Instantiate adapters for every provider with an API key."""
  generators: dict[str, ContentGenerator] = {}
  for provider_id, factory in _FACTORIES.items():
    provider_settings = settings.providers.get(provider_id.value)
    if provider_settings is None or not provider_settings.api_key:
      continue
    generators[provider_id.value] = factory(provider_settings)

  if not generators:
    logger.warning("No AI provider API keys configured; generation requests will fail.")
  else:
    logger.info("Configured AI providers: %s", ", ".join(sorted(generators)))
  return GeneratorRegistry(generators, default_provider=settings.default_provider)
