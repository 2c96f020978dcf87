"""Crash-safe file writes."""

from __future__ import annotations

import os
import re
import uuid
from pathlib import Path

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def is_safe_id(value: str) -> bool:
  """Return True when an identifier can be used as a file name component."""
  return bool(_SAFE_ID_RE.match(value))


def write_atomic(path: Path, data: bytes) -> None:
  """Write ``data`` to a temp file, fsync it, then rename over ``path``.

  Any failure up to and including the rename leaves the previous file
  untouched and removes the temp file.
  """
  tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
  try:
    with open(tmp_path, "wb") as handle:
      handle.write(data)
      handle.flush()
      os.fsync(handle.fileno())
    os.replace(tmp_path, path)
  except BaseException:
    tmp_path.unlink(missing_ok=True)
    raise


def write_direct(path: Path, data: bytes) -> None:
  with open(path, "wb") as handle:
    handle.write(data)
    handle.flush()
    os.fsync(handle.fileno())
