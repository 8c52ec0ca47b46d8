# core/utils.py
from __future__ import annotations
from typing import Any
from datetime import date, datetime
import base64, json


def json_default(o: Any) -> Any:
    """Fallback for json.dumps on Firestore values (timestamps, refs, geo points, bytes)."""
    if isinstance(o, (datetime, date)):
        return o.isoformat()
    if isinstance(o, (bytes, bytearray)):
        return base64.b64encode(bytes(o)).decode("ascii")
    # DocumentReference
    if hasattr(o, "path") and hasattr(o, "id"):
        return o.path
    # GeoPoint
    if hasattr(o, "latitude") and hasattr(o, "longitude"):
        return {"latitude": o.latitude, "longitude": o.longitude}
    return str(o)


def to_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=json_default)


def log_ctx(**kwargs) -> str:
    parts = []
    for k, v in kwargs.items():
        if v is not None and v != "":
            parts.append(f"{k}={v}")
    return " ".join(parts)
