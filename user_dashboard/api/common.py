from typing import Any, Dict, Iterable, Optional
from flask import request, jsonify
from scanner.errors import ValidationError

def ok(data: Any = None, meta: Optional[Dict[str, Any]] = None, status: int = 200):
    return jsonify({"ok": True, "data": data, "meta": meta or {}}), status

def get_json(*, required: Iterable[str] = (), optional: Iterable[str] = ()):
    if request.content_length and not request.is_json:
        raise ValidationError("Expected JSON body")
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object")
    missing = [k for k in required if k not in data]
    if missing:
        raise ValidationError("Missing required fields", details={"fields": missing})
    allowed = set(required) | set(optional)
    unknown = [k for k in data.keys() if k not in allowed]
    if unknown:
        # We don't block unknown by default, just surface it
        data["_unknown"] = unknown
    return data
