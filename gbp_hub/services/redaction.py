from __future__ import annotations
from typing import Any

# OAuth / Google token endpoint fields plus the generic ones
DEFAULT_SENSITIVE_KEYS = {
    "password", "secret", "client_secret",
    "token", "access_token", "refresh_token", "id_token",
    "authorization", "api_key", "x-api-key",
}

REDACTED = "**********"
MAX_LOGGED_STRING = 500

def redact_payload(value: Any, *, extra_keys: set[str] | None = None) -> Any:
    """Copy of `value` safe to log or store: secrets masked, long strings cut."""
    sensitive = set(DEFAULT_SENSITIVE_KEYS)
    if extra_keys:
        sensitive |= {k.lower() for k in extra_keys}

    def _walk(v: Any) -> Any:
        if isinstance(v, dict):
            return {
                k: REDACTED if isinstance(k, str) and k.lower() in sensitive else _walk(vv)
                for k, vv in v.items()
            }
        if isinstance(v, list):
            return [_walk(x) for x in v]
        if isinstance(v, str) and len(v) > MAX_LOGGED_STRING:
            return v[:MAX_LOGGED_STRING] + "..."
        return v

    return _walk(value)
