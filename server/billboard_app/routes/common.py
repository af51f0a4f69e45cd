"""Small request/response helpers shared by the JSON blueprints."""
from typing import Any, Dict, Iterable, Optional, Tuple

from flask import request

from ..errors import ValidationError


def json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def text_field(data: Dict[str, Any], key: str, strip: bool = True) -> Optional[str]:
    """String value of ``key`` (None when absent); any other JSON type is a ValidationError."""
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value.strip() if strip else value


def client_info() -> Tuple[str, str]:
    return request.remote_addr, request.headers.get("User-Agent", "")


def with_warnings(body: Dict[str, Any], warnings: Iterable) -> Dict[str, Any]:
    """Attach best-effort failures to a success response."""
    warnings = list(warnings or [])
    if warnings:
        body["warnings"] = [{"step": w.step, "message": w.message} for w in warnings]
    return body
