from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import quote

from .cli_shared import DEFAULT_POLICY_CONTEXT, GlobalOpts, OpError
from .dates import format_rfc3339
from .transport import TOKEN_HEADER, json_request


@dataclass(frozen=True)
class Policy:
    """A policy document as returned by the server.

    Fields the server leaves out stay ``None`` and are omitted from
    :meth:`to_dict`.
    """

    id: str
    name: str
    owner_id: str | None = None
    context: str | None = None
    content: str | None = None
    active: bool | None = None
    created_at: str | None = None
    modified_at: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> Policy:
        if not isinstance(raw, dict):
            raise OpError("invalid policy response: expected JSON object")
        return cls(
            id=str(raw.get("id") or ""),
            name=str(raw.get("name") or ""),
            owner_id=raw.get("owner_id"),
            context=raw.get("context"),
            content=raw.get("content"),
            active=raw.get("active"),
            created_at=raw.get("created_at"),
            modified_at=raw.get("modified_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        fields = {
            "id": self.id,
            "name": self.name,
            "owner_id": self.owner_id,
            "context": self.context,
            "content": self.content,
            "active": self.active,
            "created_at": self.created_at,
            "modified_at": self.modified_at,
        }
        return {k: v for k, v in fields.items() if v is not None}


@dataclass(frozen=True)
class CreationRequest:
    name: str
    content: str
    context: str = DEFAULT_POLICY_CONTEXT

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name, "context": self.context, "content": self.content}


@dataclass(frozen=True)
class UpdateRequest:
    """Partial update. ``None`` means the field is left untouched server side."""

    content: str | None = None
    active: bool | None = None
    context: str | None = None
    name: str | None = None

    def to_payload(self) -> dict[str, Any]:
        fields = {
            "content": self.content,
            "active": self.active,
            "context": self.context,
            "name": self.name,
        }
        return {k: v for k, v in fields.items() if v is not None}

    def is_empty(self) -> bool:
        return not self.to_payload()


@dataclass(frozen=True)
class DecisionQueryRequest:
    after: datetime | None = None
    before: datetime | None = None
    branch: str = ""
    project_id: str = ""
    offset: int = 0

    def to_query(self) -> dict[str, str]:
        query: dict[str, str] = {}
        if self.after is not None:
            query["after"] = format_rfc3339(self.after)
        if self.before is not None:
            query["before"] = format_rfc3339(self.before)
        if self.branch:
            query["branch"] = self.branch
        if self.project_id:
            query["project_id"] = self.project_id
        if self.offset > 0:
            query["offset"] = str(self.offset)
        return query


@dataclass(frozen=True)
class DecisionRequest:
    input: str
    context: str = DEFAULT_POLICY_CONTEXT

    def to_payload(self) -> dict[str, Any]:
        return {"context": self.context, "input": self.input}


class PolicyClient:
    """Owner-scoped access to the policy service.

    Every call is a single blocking request; failures propagate as
    :class:`OpError` (``HttpError`` for non-success responses).
    """

    def __init__(self, base_url: str, g: GlobalOpts) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.g = g

    def _owner_url(self, owner_id: str, *parts: str) -> str:
        segs = ["api", "v1", "owner", quote(owner_id, safe=""), *(quote(p, safe="") for p in parts)]
        return f"{self.base_url}/" + "/".join(segs)

    def _request(self, method: str, url: str, *, expected_status: int, **kwargs: Any) -> Any:
        headers = {}
        if self.g.token:
            headers[TOKEN_HEADER] = self.g.token
        return json_request(
            g=self.g,
            method=method,
            url=url,
            expected_status=expected_status,
            headers=headers,
            **kwargs,
        )

    def list_policies(self, owner_id: str, active: bool | None = None) -> list[Policy]:
        query = {}
        if active is not None:
            query["active"] = "true" if active else "false"
        raw = self._request("GET", self._owner_url(owner_id, "policy"), expected_status=200, query=query)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise OpError("invalid policy list response: expected JSON array")
        return [Policy.from_dict(item) for item in raw]

    def create_policy(self, owner_id: str, request: CreationRequest) -> Policy:
        raw = self._request(
            "POST",
            self._owner_url(owner_id, "policy"),
            expected_status=201,
            body_obj=request.to_payload(),
        )
        return Policy.from_dict(raw)

    def get_policy(self, owner_id: str, policy_id: str) -> Policy:
        raw = self._request("GET", self._owner_url(owner_id, "policy", policy_id), expected_status=200)
        return Policy.from_dict(raw)

    def delete_policy(self, owner_id: str, policy_id: str) -> None:
        self._request("DELETE", self._owner_url(owner_id, "policy", policy_id), expected_status=204)

    def update_policy(self, owner_id: str, policy_id: str, request: UpdateRequest) -> Policy:
        raw = self._request(
            "PATCH",
            self._owner_url(owner_id, "policy", policy_id),
            expected_status=200,
            body_obj=request.to_payload(),
        )
        return Policy.from_dict(raw)

    def get_decision_logs(self, owner_id: str, request: DecisionQueryRequest) -> list[Any]:
        raw = self._request(
            "GET",
            self._owner_url(owner_id, "decision"),
            expected_status=200,
            query=request.to_query(),
        )
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise OpError("invalid decision log response: expected JSON array")
        return raw

    def make_decision(self, owner_id: str, request: DecisionRequest) -> Any:
        return self._request(
            "POST",
            self._owner_url(owner_id, "decision"),
            expected_status=200,
            body_obj=request.to_payload(),
        )
