from __future__ import annotations

"""Helpers for parsing request payloads and shaping error responses."""

from typing import Any

from flask import current_app, g, jsonify, request

from recollect.utils.exceptions import ValidationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def error_response(message: str, status: int, **extra: Any):
    payload: dict[str, Any] = {"status": "error", "message": message}
    payload.update(extra)
    return jsonify(payload), status


def json_body() -> dict[str, Any]:
    """Return the JSON object body, or an empty dict when there is none."""

    if not request.data:
        return {}
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def coerce_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    raise ValidationError(f"{field_name} must be a boolean", context={"field": field_name})


def current_owner() -> str:
    return g.owner


def services():
    return current_app.config["services"]


def background_loop():
    return current_app.config["loop"]
