"""Root conftest: test environment defaults, then .env.test, before any module imports."""
from __future__ import annotations

import os
from pathlib import Path

_DEFAULTS = {
    "BUSINESS_ID": "biz-test",
    "AUTH_TOKEN": "test-token",
    "WS_URL": "ws://127.0.0.1:1/ws",
    "API_URL": "http://testserver/api",
}

_env_test = Path(__file__).resolve().parent / ".env.test"
if _env_test.exists():
    for line in _env_test.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip())

for key, value in _DEFAULTS.items():
    os.environ.setdefault(key, value)
