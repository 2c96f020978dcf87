"""Provider adapters."""

from gotham.ai.providers.base import ContentGenerator, GeneratedContent, ProviderId, normalize_provider

__all__ = ["ContentGenerator", "GeneratedContent", "ProviderId", "normalize_provider"]
