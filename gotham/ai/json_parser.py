"""Lenient JSON parsing for model replies."""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)


def strip_code_fences(raw: str) -> str:
  """Remove a single markdown code fence wrapping the whole reply."""
  match = _FENCE_RE.match(raw)
  return match.group(1) if match else raw.strip()


def parse_json_with_fallback(raw: str) -> Any:
  """Parse JSON, recovering from surrounding prose and trailing commas."""
  text = strip_code_fences(raw)
  try:
    return json.loads(text)
  except json.JSONDecodeError as exc:
    last_error = exc

  # Ignore leading or trailing prose around the payload.
  candidate = extract_json_block(text)
  if candidate is None:
    raise last_error

  for attempt in (candidate, _TRAILING_COMMA_RE.sub(r"\1", candidate)):
    try:
      return json.loads(attempt)
    except json.JSONDecodeError as exc:
      last_error = exc
  raise last_error


def extract_json_block(raw: str) -> str | None:
  """Return the first balanced JSON object or array in ``raw``."""
  start: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start is None:
      if char in "{[":
        start = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char in "{[":
      depth += 1
    elif char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start : index + 1]

  return None
