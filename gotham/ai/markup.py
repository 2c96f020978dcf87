"""Extraction of animated SVG markup from provider replies."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

from gotham.ai.errors import ErrorKind, GenerationError
from gotham.ai.json_parser import parse_json_with_fallback

DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 600

_SVG_RE = re.compile(r"<svg\b[^>]*>.*?</svg\s*>", re.IGNORECASE | re.DOTALL)
_OPEN_TAG_RE = re.compile(r"<svg\b([^>]*)>", re.IGNORECASE)
_FENCE_MARKER_RE = re.compile(r"```[a-zA-Z0-9_-]*")


@dataclass(frozen=True)
class GeneratedContent:
  """Visual markup plus an optional human-readable caption."""

  content: str
  caption: str | None = None


def _has_attribute(attrs: str, name: str) -> bool:
  return re.search(rf"(?<![\w:-]){name}\s*=", attrs) is not None


def ensure_svg_attributes(svg: str) -> str:
  """Fill in xmlns, viewBox, width and height on the root element when missing."""
  match = _OPEN_TAG_RE.match(svg)
  if match is None:
    return svg
  attrs = match.group(1)
  additions: list[str] = []
  if not _has_attribute(attrs, "xmlns"):
    additions.append('xmlns="http://www.w3.org/2000/svg"')
  if not _has_attribute(attrs, "viewBox"):
    additions.append(f'viewBox="0 0 {DEFAULT_WIDTH} {DEFAULT_HEIGHT}"')
  if not _has_attribute(attrs, "width"):
    additions.append(f'width="{DEFAULT_WIDTH}"')
  if not _has_attribute(attrs, "height"):
    additions.append(f'height="{DEFAULT_HEIGHT}"')
  if not additions:
    return svg
  opening = "<svg " + " ".join(additions) + attrs + ">"
  return opening + svg[match.end() :]


def _find_svg(text: str) -> str | None:
  match = _SVG_RE.search(text)
  return match.group(0) if match else None


def extract_markup(text: str | None, *, provider: str | None = None) -> GeneratedContent:
  """Pull the SVG block and caption out of a JSON, fenced or bare reply.

  Missing or empty markup is a permanent failure; retrying the same prompt
  will not make the provider's answer parseable.
  """
  if not text or not text.strip():
    raise GenerationError("Provider reply was empty.", kind=ErrorKind.PERMANENT_FAILURE, provider=provider)

  svg: str | None = None
  caption: str | None = None

  try:
    payload = parse_json_with_fallback(text)
  except json.JSONDecodeError:
    payload = None

  if isinstance(payload, dict):
    candidate = payload.get("svg") or payload.get("markup") or payload.get("content")
    if isinstance(candidate, str):
      svg = _find_svg(candidate)
    explanation = payload.get("explanation") or payload.get("caption")
    if isinstance(explanation, str) and explanation.strip():
      caption = explanation.strip()

  if svg is None:
    svg = _find_svg(text)
    if svg is not None and caption is None:
      remainder = _FENCE_MARKER_RE.sub("", text.replace(svg, "")).strip()
      caption = remainder or None

  if svg is None:
    raise GenerationError("Provider reply did not contain SVG markup.", kind=ErrorKind.PERMANENT_FAILURE, provider=provider)

  return GeneratedContent(content=ensure_svg_attributes(svg.strip()), caption=caption)
