"""Asset storage for generated animation markup."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import brotli
import msgspec
from starlette.concurrency import run_in_threadpool

from gotham.storage.atomic import is_safe_id, write_atomic
from gotham.utils.compression import compress_bytes, decompress_bytes

logger = logging.getLogger(__name__)


class CaptionEntry(msgspec.Struct, rename="camel", kw_only=True):
  id: str
  sender: str
  text: str
  timestamp: str


class AssetRecord(msgspec.Struct, rename="camel", kw_only=True):
  """Full generated animation, referenced from clips by id."""

  id: str
  name: str
  content: str
  created_at: str
  provider: str | None = None
  caption_history: list[CaptionEntry] = msgspec.field(default_factory=list)


class AssetsRepository(Protocol):
  """Repository contract for animation assets."""

  async def put(self, asset: AssetRecord) -> str:
    """Persist an asset and return its id."""

  async def get(self, asset_id: str) -> AssetRecord | None:
    """Fetch an asset by identifier."""

  async def exists_with_content(self, asset_id: str) -> bool:
    """Return True when the asset exists and its markup is non-empty."""


class FileAssetsRepository:
  """Brotli-compressed JSON blobs, one file per asset."""

  def __init__(self, root: Path) -> None:
    self._root = root
    self._encoder = msgspec.json.Encoder()
    self._decoder = msgspec.json.Decoder(AssetRecord)

  def _path(self, asset_id: str) -> Path:
    return self._root / f"{asset_id}.json.br"

  def _put_sync(self, asset: AssetRecord) -> None:
    self._root.mkdir(parents=True, exist_ok=True)
    write_atomic(self._path(asset.id), compress_bytes(self._encoder.encode(asset)))

  def _get_sync(self, asset_id: str) -> AssetRecord | None:
    path = self._path(asset_id)
    if not path.is_file():
      return None
    return self._decoder.decode(decompress_bytes(path.read_bytes()))

  async def put(self, asset: AssetRecord) -> str:
    if not is_safe_id(asset.id):
      raise ValueError(f"Invalid asset id: {asset.id!r}")
    await run_in_threadpool(self._put_sync, asset)
    logger.debug("Stored asset %s (%d chars)", asset.id, len(asset.content))
    return asset.id

  async def get(self, asset_id: str) -> AssetRecord | None:
    if not is_safe_id(asset_id):
      return None
    return await run_in_threadpool(self._get_sync, asset_id)

  async def exists_with_content(self, asset_id: str) -> bool:
    try:
      asset = await self.get(asset_id)
    except (OSError, brotli.error, msgspec.DecodeError) as exc:
      logger.warning("Asset %s could not be read: %s", asset_id, exc)
      return False
    return asset is not None and bool(asset.content.strip())
