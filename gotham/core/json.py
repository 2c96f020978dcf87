"""JSON responses that understand msgspec structs."""

from __future__ import annotations

from typing import Any

import msgspec
from fastapi.responses import JSONResponse

_encoder = msgspec.json.Encoder()


class MsgspecJSONResponse(JSONResponse):
  """JSONResponse rendered with msgspec so Structs keep their camelCase field names."""

  def render(self, content: Any) -> bytes:
    return _encoder.encode(content)
