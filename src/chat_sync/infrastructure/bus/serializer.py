from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any


def _default(o: object) -> Any:
    if isinstance(o, datetime):
        return o.isoformat()
    if isinstance(o, Enum):
        return o.value
    raise TypeError(f"{type(o).__name__} is not JSON serializable")


def serialize_frame(payload: dict[str, Any]) -> str:
    """Outbound frame as compact JSON text."""
    return json.dumps(payload, default=_default, separators=(",", ":"))
