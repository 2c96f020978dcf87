"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_storyboard_id() -> str:
  """Return a new storyboard identifier."""
  return str(uuid.uuid4())


def generate_session_id() -> str:
  """Return a new generation session identifier."""
  return str(uuid.uuid4())


def generate_clip_id() -> str:
  return str(uuid.uuid4())


def generate_asset_id() -> str:
  return str(uuid.uuid4())
