"""Brotli helpers for stored animation assets."""

import brotli

BROTLI_QUALITY = 9


def compress_bytes(raw: bytes) -> bytes:
  """Compress an encoded asset payload."""
  return brotli.compress(raw, quality=BROTLI_QUALITY)


def decompress_bytes(blob: bytes) -> bytes:
  return brotli.decompress(blob)
