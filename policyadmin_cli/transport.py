from __future__ import annotations

import http.client
import json
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from . import __version__
from .cli_shared import GlobalOpts, OpError, _eprint

USER_AGENT = f"policyadmin/{__version__}"
TOKEN_HEADER = "Circle-Token"


class HttpError(OpError):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"unexpected status-code: {status} - {message}")
        self.status = status
        self.message = message


def _http_request(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes | None = None,
    timeout_seconds: int = 30,
) -> tuple[int, dict[str, str], bytes]:
    req = Request(url, data=body, method=str(method).upper())
    for k, v in headers.items():
        req.add_header(k, v)
    try:
        with urlopen(req, timeout=timeout_seconds) as resp:
            status = getattr(resp, "status", 200)
            hdrs = {k.lower(): v for k, v in dict(resp.headers).items()}
            data = resp.read()
            return int(status), hdrs, data
    except HTTPError as e:
        hdrs = {k.lower(): v for k, v in dict(e.headers or {}).items()}
        data = e.read() if hasattr(e, "read") else b""
        return int(getattr(e, "code", 0) or 0), hdrs, data
    except URLError as e:
        raise OpError(f"http request failed: {e}") from e
    # Dropped connections and read timeouts surface outside URLError.
    except (OSError, http.client.HTTPException) as e:
        raise OpError(f"http request failed: {e}") from e


def _decode_body(data: bytes) -> Any:
    text = data.decode("utf-8", errors="replace")
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def _error_message(parsed: Any) -> str:
    if isinstance(parsed, dict):
        return str(parsed.get("error") or parsed.get("message") or parsed.get("raw") or "").strip()
    if parsed is None:
        return ""
    return str(parsed)


def json_request(
    *,
    g: GlobalOpts,
    method: str,
    url: str,
    expected_status: int,
    query: dict[str, Any] | None = None,
    body_obj: Any = None,
    headers: dict[str, str] | None = None,
) -> Any:
    """Send one JSON request and return the decoded body.

    Any status other than ``expected_status`` raises :class:`HttpError`.
    There is no retry.
    """
    query_clean = {k: str(v) for k, v in (query or {}).items() if v is not None and str(v) != ""}
    if query_clean:
        url += f"?{urlencode(query_clean)}"

    hdrs = {"accept": "application/json", "user-agent": USER_AGENT}
    hdrs.update(headers or {})
    body_bytes = None
    if body_obj is not None:
        body_bytes = json.dumps(body_obj, separators=(",", ":")).encode("utf-8")
        hdrs["content-type"] = "application/json"

    if g.debug:
        _eprint(f"> {method.upper()} {url}")
    status, _hdrs, data = _http_request(method=method, url=url, headers=hdrs, body=body_bytes)
    if g.debug:
        _eprint(f"< {status} ({len(data)} bytes)")

    parsed = _decode_body(data)
    if status != expected_status:
        raise HttpError(status, _error_message(parsed) or "no response body")
    return parsed


class GraphQLClient:
    """Minimal GraphQL-over-HTTP client for the registry endpoint."""

    def __init__(self, g: GlobalOpts) -> None:
        self.g = g
        self.url = f"{g.host}/{g.endpoint}"

    def run(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        headers = {}
        if self.g.token:
            headers["authorization"] = self.g.token
        parsed = json_request(
            g=self.g,
            method="POST",
            url=self.url,
            expected_status=200,
            body_obj={"query": query, "variables": variables or {}},
            headers=headers,
        )
        if not isinstance(parsed, dict):
            raise OpError("invalid graphql response: expected JSON object")
        errors = parsed.get("errors")
        if isinstance(errors, list) and errors:
            messages = [str(e.get("message") if isinstance(e, dict) else e).strip() for e in errors]
            raise OpError("\n".join(m for m in messages if m) or "graphql request failed")
        data = parsed.get("data")
        return data if isinstance(data, dict) else {}
