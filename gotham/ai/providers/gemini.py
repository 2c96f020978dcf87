"""Gemini adapter built on the google-genai SDK."""

from __future__ import annotations

import logging

from google import genai
from google.genai import types

from gotham.ai.errors import to_generation_error
from gotham.ai.providers.base import ContentGenerator, ProviderId
from gotham.config import ProviderSettings

logger = logging.getLogger(__name__)


class GeminiGenerator(ContentGenerator):
  provider = ProviderId.GOOGLE

  def __init__(self, settings: ProviderSettings, *, client: genai.Client | None = None) -> None:
    if client is None and not settings.api_key:
      raise ValueError("GOOGLE_API_KEY or GEMINI_API_KEY is required for the Gemini provider.")
    self.model = settings.model
    self._max_tokens = settings.max_output_tokens
    self._temperature = settings.temperature
    self._client = client or genai.Client(api_key=settings.api_key)

  async def complete(self, prompt: str, *, system: str | None = None) -> str:
    config = types.GenerateContentConfig(system_instruction=system, temperature=self._temperature, max_output_tokens=self._max_tokens)

    try:
      response = await self._client.aio.models.generate_content(model=self.model, contents=prompt, config=config)
    except Exception as exc:
      raise to_generation_error(exc, provider=self.provider.value) from exc

    text = response.text
    if not text:
      raise self._empty_reply()
    return text
