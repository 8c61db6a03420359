"""Offset-paginated retrieval of policy decision logs.

The offset advances by the number of entries received, so entries written
to the log stream while a fetch is in progress may be skipped or returned
twice. That is accepted: the service exposes no cursor to pin a snapshot.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Iterator, Protocol

from .policy_api import DecisionQueryRequest


class DecisionLogSource(Protocol):
    def get_decision_logs(self, owner_id: str, request: DecisionQueryRequest) -> list[Any]: ...


def iter_decision_log_pages(
    client: DecisionLogSource,
    owner_id: str,
    request: DecisionQueryRequest,
) -> Iterator[list[Any]]:
    offset = 0
    while True:
        page = client.get_decision_logs(owner_id, replace(request, offset=offset))
        if not page:
            return
        yield page
        offset += len(page)


def fetch_all_decision_logs(
    client: DecisionLogSource,
    owner_id: str,
    request: DecisionQueryRequest,
    *,
    on_progress: Callable[[int], None] | None = None,
) -> list[Any]:
    out: list[Any] = []
    for page in iter_decision_log_pages(client, owner_id, request):
        out.extend(page)
        if on_progress is not None:
            on_progress(len(out))
    return out
