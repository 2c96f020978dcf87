"""Base interfaces for content generators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum

from gotham.ai.errors import ErrorKind, GenerationError
from gotham.ai.markup import GeneratedContent, extract_markup
from gotham.ai.prompts import SCENE_SYSTEM_PROMPT


class ProviderId(StrEnum):
  OPENAI = "openai"
  ANTHROPIC = "anthropic"
  GOOGLE = "google"


_PROVIDER_ALIASES: dict[str, ProviderId] = {
  "openai": ProviderId.OPENAI,
  "gpt": ProviderId.OPENAI,
  "chatgpt": ProviderId.OPENAI,
  "anthropic": ProviderId.ANTHROPIC,
  "claude": ProviderId.ANTHROPIC,
  "google": ProviderId.GOOGLE,
  "gemini": ProviderId.GOOGLE,
}


def normalize_provider(raw: str | None) -> ProviderId | None:
  """Map a provider name or alias to its canonical id."""
  if raw is None:
    return None
  return _PROVIDER_ALIASES.get(raw.strip().lower())


class ContentGenerator(ABC):
  """Abstract base class for provider adapters."""

  provider: ProviderId
  model: str

  @abstractmethod
  async def complete(self, prompt: str, *, system: str | None = None) -> str:
    """Return the raw text reply for a prompt."""

  async def generate(self, prompt: str) -> GeneratedContent:
    """Generate one scene's markup and caption."""
    text = await self.complete(prompt, system=SCENE_SYSTEM_PROMPT)
    return extract_markup(text, provider=self.provider.value)

  def _empty_reply(self) -> GenerationError:
    return GenerationError(f"{self.provider.value} returned an empty reply.", kind=ErrorKind.PERMANENT_FAILURE, provider=self.provider.value)
