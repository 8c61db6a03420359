from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO


class PolicyAdminError(Exception):
    pass


class UsageError(PolicyAdminError):
    pass


class OpError(PolicyAdminError):
    pass


POLICYADMIN_HOST = "POLICYADMIN_HOST"
POLICYADMIN_ENDPOINT = "POLICYADMIN_ENDPOINT"
POLICYADMIN_TOKEN = "POLICYADMIN_TOKEN"
POLICYADMIN_DEBUG = "POLICYADMIN_DEBUG"

DEFAULT_HOST = "https://circleci.com"
DEFAULT_GRAPHQL_ENDPOINT = "graphql-unstable"
DEFAULT_POLICY_BASE_URL = "https://internal.circleci.com"
DEFAULT_POLICY_CONTEXT = "config"


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


@dataclass(frozen=True)
class GlobalOpts:
    host: str = DEFAULT_HOST
    endpoint: str = DEFAULT_GRAPHQL_ENDPOINT
    token: str = ""
    debug: bool = False
    pretty: bool = True
    quiet: bool = False


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _truthy(raw: str | None) -> bool:
    return str(raw or "").strip().lower() in {"1", "true", "yes", "on"}


def _require_str(val: str | None, name: str, *, hint: str) -> str:
    v = (val or "").strip()
    if not v:
        raise UsageError(f"missing {name} ({hint})")
    return v


def resolve_global_opts(
    *,
    host: str | None = None,
    endpoint: str | None = None,
    token: str | None = None,
    debug: bool = False,
    plain_json: bool = False,
    quiet: bool = False,
) -> GlobalOpts:
    resolved_host = (host or _env_or_none(POLICYADMIN_HOST) or DEFAULT_HOST).strip().rstrip("/")
    if not resolved_host.startswith(("http://", "https://")):
        raise UsageError(f"invalid host {resolved_host!r}: expected an http(s) URL")
    resolved_endpoint = (endpoint or _env_or_none(POLICYADMIN_ENDPOINT) or DEFAULT_GRAPHQL_ENDPOINT).strip().strip("/")
    return GlobalOpts(
        host=resolved_host,
        endpoint=resolved_endpoint,
        token=(token or _env_or_none(POLICYADMIN_TOKEN) or "").strip(),
        debug=bool(debug or _truthy(os.environ.get(POLICYADMIN_DEBUG))),
        pretty=not plain_json,
        quiet=quiet,
    )


def _print_json(obj: Any, *, pretty: bool, out: TextIO | None = None) -> None:
    dst = out if out is not None else sys.stdout
    if pretty:
        dst.write(json.dumps(obj, indent=2, sort_keys=True) + "\n")
    else:
        dst.write(json.dumps(obj, separators=(",", ":"), sort_keys=True) + "\n")


def _read_text_file(path: str, *, label: str) -> str:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise OpError(f"failed to read {label}: {e}") from e
