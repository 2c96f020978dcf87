"""OpenAI chat completions adapter."""

from __future__ import annotations

import logging

from openai import AsyncOpenAI

from gotham.ai.errors import to_generation_error
from gotham.ai.providers.base import ContentGenerator, ProviderId
from gotham.config import ProviderSettings

logger = logging.getLogger(__name__)


class OpenAIGenerator(ContentGenerator):
  provider = ProviderId.OPENAI

  def __init__(self, settings: ProviderSettings, *, client: AsyncOpenAI | None = None) -> None:
    if client is None and not settings.api_key:
      raise ValueError("OPENAI_API_KEY is required for the OpenAI provider.")
    self.model = settings.model
    self._max_tokens = settings.max_output_tokens
    self._temperature = settings.temperature
    self._client = client or AsyncOpenAI(api_key=settings.api_key)

  async def complete(self, prompt: str, *, system: str | None = None) -> str:
    messages = []
    if system:
      messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    try:
      response = await self._client.chat.completions.create(model=self.model, messages=messages, max_tokens=self._max_tokens, temperature=self._temperature)
    except Exception as exc:
      raise to_generation_error(exc, provider=self.provider.value) from exc

    content = response.choices[0].message.content if response.choices else None
    if not content:
      raise self._empty_reply()
    if response.usage:
      logger.debug("OpenAI usage: prompt=%s completion=%s", response.usage.prompt_tokens, response.usage.completion_tokens)
    return content
