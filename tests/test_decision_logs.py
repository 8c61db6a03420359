import pytest

from policyadmin_cli.cli_shared import OpError
from policyadmin_cli.decision_logs import fetch_all_decision_logs, iter_decision_log_pages
from policyadmin_cli.policy_api import DecisionQueryRequest


class _PagedClient:
    def __init__(self, sizes, fail_on_call=None):
        self.sizes = list(sizes)
        self.fail_on_call = fail_on_call
        self.requests: list[DecisionQueryRequest] = []

    def get_decision_logs(self, owner_id, request):
        assert owner_id == "owner-1"
        self.requests.append(request)
        n = len(self.requests)
        if self.fail_on_call == n:
            raise OpError("boom")
        size = self.sizes[n - 1]
        return [{"id": f"{n}-{i}"} for i in range(size)]


def test_fetch_all_aggregates_pages_and_advances_offset():
    client = _PagedClient([3, 2, 0])
    progress: list[int] = []

    logs = fetch_all_decision_logs(
        client,
        "owner-1",
        DecisionQueryRequest(branch="main"),
        on_progress=progress.append,
    )

    assert len(logs) == 5
    assert [e["id"] for e in logs] == ["1-0", "1-1", "1-2", "2-0", "2-1"]
    assert [r.offset for r in client.requests] == [0, 3, 5]
    assert all(r.branch == "main" for r in client.requests)
    assert progress == [3, 5]


def test_first_empty_page_returns_nothing():
    client = _PagedClient([0])
    assert fetch_all_decision_logs(client, "owner-1", DecisionQueryRequest()) == []
    assert len(client.requests) == 1


def test_error_aborts_without_partial_result():
    client = _PagedClient([4, 4, 0], fail_on_call=2)
    progress: list[int] = []

    with pytest.raises(OpError, match="boom"):
        fetch_all_decision_logs(client, "owner-1", DecisionQueryRequest(), on_progress=progress.append)
    assert progress == [4]
    assert len(client.requests) == 2


def test_iter_pages_is_lazy():
    client = _PagedClient([2, 1, 0])
    pages = iter_decision_log_pages(client, "owner-1", DecisionQueryRequest())

    assert client.requests == []
    assert len(next(pages)) == 2
    assert len(client.requests) == 1
    assert len(list(pages)) == 1
    assert [r.offset for r in client.requests] == [0, 2, 3]
