from __future__ import annotations

from .cli_shared import POLICYADMIN_TOKEN


class AuthInputError(ValueError):
    """Raised when CLI auth inputs are missing or malformed."""


class MissingTokenError(AuthInputError):
    """Raised when an API token is required but missing."""


def _require_non_empty(val: str | None, *, name: str, hint: str) -> str:
    out = (val or "").strip()
    if not out:
        raise MissingTokenError(f"missing {name} ({hint})")
    return out


def validate_token(token: str | None, *, token_env_name: str = POLICYADMIN_TOKEN) -> str:
    value = _require_non_empty(token, name="token", hint=f"--token or env {token_env_name}")
    if any(ch.isspace() for ch in value):
        raise AuthInputError("token must not contain whitespace")
    return value
