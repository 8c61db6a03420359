from __future__ import annotations

import argparse
import contextlib
import sys
from typing import Any, Iterator, TextIO

from rich.console import Console

from .cli_shared import GlobalOpts, OpError, UsageError, _print_json, _read_text_file
from .dates import DateParseError, parse_strict
from .decision_logs import fetch_all_decision_logs
from .policy_api import (
    CreationRequest,
    DecisionQueryRequest,
    DecisionRequest,
    PolicyClient,
    UpdateRequest,
)

_PROGRESS_CONSOLE = Console(stderr=True)


def build_policy_client(base_url: str, g: GlobalOpts) -> PolicyClient:
    return PolicyClient(base_url, g)


def _emit_json(obj: Any, g: GlobalOpts, *, what: str, out: TextIO | None = None) -> None:
    try:
        _print_json(obj, pretty=g.pretty, out=out)
    except (TypeError, ValueError, OSError) as e:
        raise OpError(f"failed to output {what} in json format: {e}") from e


def _parse_date_flag(raw: str | None, flag: str) -> Any:
    if raw is None:
        return None
    try:
        return parse_strict(raw)
    except DateParseError as e:
        raise UsageError(f"error in parsing --{flag} value: {e}") from e


@contextlib.contextmanager
def _logs_progress(g: GlobalOpts) -> Iterator[Any]:
    if g.quiet:
        yield lambda _count: None
        return
    base = "Fetching Policy Decision Logs..."
    with _PROGRESS_CONSOLE.status(base, spinner="dots") as status:
        yield lambda count: status.update(f"{base} downloaded {count} logs...")


@contextlib.contextmanager
def _output_sink(path: str | None) -> Iterator[TextIO]:
    if not path:
        yield sys.stdout
        return
    try:
        fh = open(path, "w", encoding="utf-8")
    except OSError as e:
        raise OpError(f"failed to create output file: {e}") from e
    with fh:
        yield fh


def cmd_policy_list(args: argparse.Namespace, g: GlobalOpts) -> int:
    client = build_policy_client(args.policy_base_url, g)
    try:
        policies = client.list_policies(args.owner_id, args.active)
    except OpError as e:
        raise OpError(f"failed to list policies: {e}") from e
    _emit_json([p.to_dict() for p in policies], g, what="policies")
    return 0


def cmd_policy_create(args: argparse.Namespace, g: GlobalOpts) -> int:
    content = _read_text_file(args.policy, label="policy file")
    request = CreationRequest(name=args.name, context=args.context, content=content)
    client = build_policy_client(args.policy_base_url, g)
    try:
        result = client.create_policy(args.owner_id, request)
    except OpError as e:
        raise OpError(f"failed to create policy: {e}") from e
    _emit_json(result.to_dict(), g, what="policy")
    return 0


def cmd_policy_get(args: argparse.Namespace, g: GlobalOpts) -> int:
    client = build_policy_client(args.policy_base_url, g)
    try:
        policy = client.get_policy(args.owner_id, args.policy_id)
    except OpError as e:
        raise OpError(f"failed to get policy: {e}") from e
    _emit_json(policy.to_dict(), g, what="policy")
    return 0


def cmd_policy_delete(args: argparse.Namespace, g: GlobalOpts) -> int:
    client = build_policy_client(args.policy_base_url, g)
    try:
        client.delete_policy(args.owner_id, args.policy_id)
    except OpError as e:
        raise OpError(f"failed to delete policy: {e}") from e
    sys.stdout.write("Deleted Successfully\n")
    return 0


def cmd_policy_update(args: argparse.Namespace, g: GlobalOpts) -> int:
    if args.policy is None and args.active is None and args.context is None and args.name is None:
        raise UsageError("one of policy, active, context, or name must be set")

    content = None
    if args.policy is not None:
        content = _read_text_file(args.policy, label="policy file")

    request = UpdateRequest(content=content, active=args.active, context=args.context, name=args.name)
    client = build_policy_client(args.policy_base_url, g)
    try:
        result = client.update_policy(args.owner_id, args.policy_id, request)
    except OpError as e:
        raise OpError(f"failed to update policy: {e}") from e
    _emit_json(result.to_dict(), g, what="policy")
    return 0


def cmd_policy_logs(args: argparse.Namespace, g: GlobalOpts) -> int:
    request = DecisionQueryRequest(
        after=_parse_date_flag(args.after, "after"),
        before=_parse_date_flag(args.before, "before"),
        branch=(args.branch or "").strip(),
        project_id=(args.project_id or "").strip(),
    )
    client = build_policy_client(args.policy_base_url, g)

    with _output_sink(args.out) as dst:
        with _logs_progress(g) as on_progress:
            try:
                logs = fetch_all_decision_logs(client, args.owner_id, request, on_progress=on_progress)
            except OpError as e:
                raise OpError(f"failed to get policy decision logs: {e}") from e
        _emit_json(logs, g, what="policy decision logs", out=dst)
    return 0


def cmd_policy_decide(args: argparse.Namespace, g: GlobalOpts) -> int:
    raw_input = _read_text_file(args.input, label="file")
    request = DecisionRequest(context=args.context, input=raw_input)
    client = build_policy_client(args.policy_base_url, g)
    try:
        decision = client.make_decision(args.owner_id, request)
    except OpError as e:
        raise OpError(f"failed to make decision: {e}") from e
    _emit_json(decision, g, what="decision")
    return 0
