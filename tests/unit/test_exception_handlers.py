"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from gotham.core.exceptions import _error_payload, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "sceneCount"), "msg": "Value error, sceneCount must be positive.", "input": {"prompt": "A paper boat", "sceneCount": 0}, "ctx": {"error": ValueError("sceneCount must be positive."), "input": 0}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "sceneCount"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: sceneCount must be positive."
  assert "input" not in sanitized[0]["ctx"]


def test_error_payload_carries_request_id_only_when_known() -> None:
  assert _error_payload("Session not found", request_id="req-1") == {"success": False, "detail": "Session not found", "requestId": "req-1"}
  assert _error_payload("Session not found") == {"success": False, "detail": "Session not found"}
