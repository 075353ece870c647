from __future__ import annotations

from typing import NewType

DedupeKey = NewType("DedupeKey", str)

# WebSocket close codes (RFC 6455 §7.4.1)
NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
