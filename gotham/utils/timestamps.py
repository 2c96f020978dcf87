"""Timestamp helpers shared by the store and the engine."""

from __future__ import annotations

import datetime


def utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def utc_now_iso() -> str:
  """Return an ISO-8601 UTC timestamp with millisecond precision."""
  return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")
