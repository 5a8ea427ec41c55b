"""
Tiny validation helpers (dependency-free).
"""
from typing import Any, Dict, Iterable, Optional
from scanner.errors import ValidationError

def coerce_str(data: Dict[str, Any], key: str, *, min_len: int = 0, max_len: int = 255) -> str:
    v = data.get(key, "")
    if v is None:
        v = ""
    if not isinstance(v, str):
        raise ValidationError(f"'{key}' must be string")
    v = v.strip()
    if len(v) < min_len:
        raise ValidationError(f"'{key}' must be at least {min_len} chars")
    if len(v) > max_len:
        raise ValidationError(f"'{key}' must be at most {max_len} chars")
    return v

def coerce_optional_str(data: Dict[str, Any], key: str, *, max_len: int = 1024) -> Optional[str]:
    if data.get(key) in (None, ""):
        return None
    return coerce_str(data, key, max_len=max_len) or None

def coerce_choice(data: Dict[str, Any], key: str, choices: Iterable[str]) -> str:
    allowed = list(choices)
    v = coerce_str(data, key).lower()
    if v not in allowed:
        raise ValidationError(f"'{key}' must be one of {', '.join(allowed)}", details={"allowed": allowed})
    return v
