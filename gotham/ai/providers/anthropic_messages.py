"""Anthropic messages adapter."""

from __future__ import annotations

import logging

from anthropic import AsyncAnthropic

from gotham.ai.errors import to_generation_error
from gotham.ai.providers.base import ContentGenerator, ProviderId
from gotham.config import ProviderSettings

logger = logging.getLogger(__name__)


class AnthropicGenerator(ContentGenerator):
  provider = ProviderId.ANTHROPIC

  def __init__(self, settings: ProviderSettings, *, client: AsyncAnthropic | None = None) -> None:
    if client is None and not settings.api_key:
      raise ValueError("ANTHROPIC_API_KEY is required for the Anthropic provider.")
    self.model = settings.model
    self._max_tokens = settings.max_output_tokens
    self._temperature = settings.temperature
    self._client = client or AsyncAnthropic(api_key=settings.api_key)

  async def complete(self, prompt: str, *, system: str | None = None) -> str:
    kwargs = {"model": self.model, "max_tokens": self._max_tokens, "temperature": self._temperature, "messages": [{"role": "user", "content": prompt}]}
    if system:
      kwargs["system"] = system

    try:
      message = await self._client.messages.create(**kwargs)
    except Exception as exc:
      raise to_generation_error(exc, provider=self.provider.value) from exc

    # Replies are a list of content blocks; only text blocks carry the answer.
    text = "".join(block.text for block in message.content if getattr(block, "type", None) == "text")
    if not text.strip():
      raise self._empty_reply()
    logger.debug("Anthropic usage: input=%s output=%s", message.usage.input_tokens, message.usage.output_tokens)
    return text
