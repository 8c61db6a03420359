from __future__ import annotations

import argparse
import contextlib
import io
import sys
from typing import Any

import click
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

from .. import __version__
from ..cli_shared import (
    DEFAULT_POLICY_BASE_URL,
    DEFAULT_POLICY_CONTEXT,
    POLICYADMIN_DEBUG,
    POLICYADMIN_ENDPOINT,
    POLICYADMIN_HOST,
    POLICYADMIN_TOKEN,
    GlobalOpts,
    OpError,
    UsageError,
    _eprint,
    resolve_global_opts,
)
from ..namespace_commands import (
    cmd_namespace_create,
    cmd_namespace_delete_alias,
    cmd_namespace_rename,
)
from ..policy_commands import (
    cmd_policy_create,
    cmd_policy_decide,
    cmd_policy_delete,
    cmd_policy_get,
    cmd_policy_list,
    cmd_policy_logs,
    cmd_policy_update,
)


_ERROR_CONSOLE = Console(stderr=True)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {escape(msg)}", highlight=False)


def _root_help_text(*, root_app: typer.Typer, prog_name: str) -> str:
    buf = io.StringIO()
    try:
        with contextlib.redirect_stdout(buf):
            try:
                root_app(args=["--help"], prog_name=prog_name, standalone_mode=False)
            except (typer.Exit, click.ClickException):
                pass
    except Exception:
        return ""
    return str(buf.getvalue() or "").strip()


def _render_usage_error_with_help(
    *,
    message: str,
    ctx: click.Context | None = None,
    fallback_help: str = "",
) -> None:
    _rich_error(message)
    help_text = ""
    if isinstance(ctx, click.Context):
        try:
            help_text = str(ctx.get_help() or "").strip()
        except Exception:
            help_text = ""
    if not help_text:
        help_text = str(fallback_help or "").strip()
    if help_text:
        _eprint("")
        _eprint(help_text)


def _echo_help(ctx: click.Context) -> None:
    # Rich-formatted help is printed directly and get_help() returns "".
    text = ctx.get_help()
    if text:
        typer.echo(text)


def _namespace(**kwargs: Any) -> argparse.Namespace:
    return argparse.Namespace(**kwargs)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"policyadmin {__version__}")
        raise typer.Exit(code=0)


app = typer.Typer(
    name="policyadmin",
    help="Administer policies and namespaces on the remote registry.",
    no_args_is_help=True,
    add_completion=False,
)

policy_app = typer.Typer(
    help=(
        "Policies ensure security of build configs via a security policy management framework. "
        "This group of commands allows the management of policies to be verified against build configs."
    ),
    no_args_is_help=True,
)
namespace_app = typer.Typer(help="Operate on namespaces", no_args_is_help=True)

app.add_typer(policy_app, name="policy")
app.add_typer(namespace_app, name="namespace")


@app.callback()
def app_callback(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", help=f"Registry host (env {POLICYADMIN_HOST})"),
    endpoint: str | None = typer.Option(
        None,
        "--endpoint",
        help=f"GraphQL endpoint path on the host (env {POLICYADMIN_ENDPOINT})",
    ),
    token: str | None = typer.Option(None, "--token", help=f"API token (env {POLICYADMIN_TOKEN})"),
    debug: bool = typer.Option(False, "--debug", help=f"Echo HTTP requests to stderr (env {POLICYADMIN_DEBUG})"),
    plain_json: bool = typer.Option(False, "--plain-json", help="Emit compact JSON output"),
    quiet: bool = typer.Option(False, "--quiet", help="Reduce stderr output (no progress spinner)"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    del version
    try:
        g = resolve_global_opts(
            host=host,
            endpoint=endpoint,
            token=token,
            debug=debug,
            plain_json=plain_json,
            quiet=quiet,
        )
    except UsageError as e:
        _render_usage_error_with_help(message=str(e), ctx=ctx)
        raise typer.Exit(code=2)
    ctx.obj = {"g": g}


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    root = ctx.find_root()
    for c in (ctx, root):
        if isinstance(c.obj, dict) and isinstance(c.obj.get("g"), GlobalOpts):
            return c.obj["g"]
    try:
        return resolve_global_opts()
    except UsageError as e:
        _render_usage_error_with_help(message=str(e), ctx=ctx)
        raise typer.Exit(code=2)


def _invoke(ctx: typer.Context, func: Any, **kwargs: Any) -> None:
    g = _ctx_global(ctx)
    args = _namespace(**kwargs)
    try:
        code = int(func(args, g))
    except UsageError as e:
        _render_usage_error_with_help(message=str(e), ctx=ctx)
        raise typer.Exit(code=2)
    except OpError as e:
        _rich_error(str(e))
        raise typer.Exit(code=1)

    if code:
        raise typer.Exit(code=code)


def _invoke_from_locals(
    ctx: typer.Context,
    func: Any,
    local_vars: dict[str, Any],
    *,
    drop: tuple[str, ...] = ("ctx",),
) -> None:
    _invoke(ctx, func, **{k: v for k, v in local_vars.items() if k not in drop})


def _owner_id_option() -> Any:
    return typer.Option(None, "--owner-id", help="The id of the owner of a policy (required here or on the policy group)")


def _policy_base_url_option() -> Any:
    return typer.Option(None, "--policy-base-url", help=f"Base url for policy api (default {DEFAULT_POLICY_BASE_URL})")


@policy_app.callback()
def policy_callback(
    ctx: typer.Context,
    owner_id: str | None = _owner_id_option(),
    policy_base_url: str | None = _policy_base_url_option(),
) -> None:
    ctx.ensure_object(dict)["policy"] = {"owner_id": owner_id, "policy_base_url": policy_base_url}


def _invoke_policy(ctx: typer.Context, func: Any, local_vars: dict[str, Any]) -> None:
    # Subcommand flags win over the ones given on the policy group.
    scope = (ctx.find_object(dict) or {}).get("policy") or {}
    owner_id = (local_vars.get("owner_id") or scope.get("owner_id") or "").strip()
    if not owner_id:
        _render_usage_error_with_help(message="missing --owner-id (required flag)", ctx=ctx)
        raise typer.Exit(code=2)
    base_url = local_vars.get("policy_base_url") or scope.get("policy_base_url") or DEFAULT_POLICY_BASE_URL
    _invoke_from_locals(ctx, func, local_vars | {"owner_id": owner_id, "policy_base_url": base_url})


@policy_app.command("list", help="List all policies.")
def policy_list(
    ctx: typer.Context,
    owner_id: str | None = _owner_id_option(),
    policy_base_url: str | None = _policy_base_url_option(),
    active: bool | None = typer.Option(
        None,
        "--active/--inactive",
        help="(OPTIONAL) filter policies based on active status",
    ),
) -> None:
    _invoke_policy(ctx, cmd_policy_list, locals())


@policy_app.command("create", help="Create a policy.")
def policy_create(
    ctx: typer.Context,
    owner_id: str | None = _owner_id_option(),
    policy_base_url: str | None = _policy_base_url_option(),
    name: str = typer.Option(..., "--name", help="Name of policy to create"),
    context: str = typer.Option(DEFAULT_POLICY_CONTEXT, "--context", help="Policy context"),
    policy: str = typer.Option(..., "--policy", help="Path to rego policy file"),
) -> None:
    _invoke_policy(ctx, cmd_policy_create, locals())


@policy_app.command("get", help="Get a policy.")
def policy_get(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy ID"),
    owner_id: str | None = _owner_id_option(),
    policy_base_url: str | None = _policy_base_url_option(),
) -> None:
    _invoke_policy(ctx, cmd_policy_get, locals())


@policy_app.command("delete", help="Delete a policy.")
def policy_delete(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy ID"),
    owner_id: str | None = _owner_id_option(),
    policy_base_url: str | None = _policy_base_url_option(),
) -> None:
    _invoke_policy(ctx, cmd_policy_delete, locals())


@policy_app.command("update", help="Update a policy. At least one of --policy, --active, --context or --name is required.")
def policy_update(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy ID"),
    owner_id: str | None = _owner_id_option(),
    policy_base_url: str | None = _policy_base_url_option(),
    name: str | None = typer.Option(None, "--name", help="Set name of the given policy-id"),
    context: str | None = typer.Option(None, "--context", help="Policy context (if set, must be config)"),
    active: bool | None = typer.Option(
        None,
        "--active/--inactive",
        help="Set policy active state",
    ),
    policy: str | None = typer.Option(None, "--policy", help="Path to rego file containing the updated policy"),
) -> None:
    _invoke_policy(ctx, cmd_policy_update, locals())


@policy_app.command("logs", help="Get policy (decision) logs.")
def policy_logs(
    ctx: typer.Context,
    owner_id: str | None = _owner_id_option(),
    policy_base_url: str | None = _policy_base_url_option(),
    after: str | None = typer.Option(None, "--after", help="Filter decision logs triggered AFTER this datetime"),
    before: str | None = typer.Option(None, "--before", help="Filter decision logs triggered BEFORE this datetime"),
    branch: str | None = typer.Option(None, "--branch", help="Filter decision logs based on branch name"),
    project_id: str | None = typer.Option(None, "--project-id", help="Filter decision logs based on project-id"),
    out: str | None = typer.Option(None, "--out", help="Write logs to this file instead of stdout"),
) -> None:
    _invoke_policy(ctx, cmd_policy_logs, locals())


@policy_app.command("decide", help="Make a decision (dry-run evaluation, nothing is persisted).")
def policy_decide(
    ctx: typer.Context,
    owner_id: str | None = _owner_id_option(),
    policy_base_url: str | None = _policy_base_url_option(),
    context: str = typer.Option(DEFAULT_POLICY_CONTEXT, "--context", help="Policy context for decision"),
    input: str = typer.Option(..., "--input", help="Path to input file"),
) -> None:
    _invoke_policy(ctx, cmd_policy_decide, locals())


@namespace_app.command(
    "create",
    help=(
        "Create a namespace. Pass NAME VCS_TYPE ORG_NAME, or NAME with --org-id. "
        "Please note that at this time all namespaces created in the registry are world-readable."
    ),
)
def namespace_create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="The name to give your new namespace"),
    vcs_type: str | None = typer.Argument(
        None,
        help='Your VCS provider, can be either "github" or "bitbucket". Optional when passing --org-id.',
    ),
    org_name: str | None = typer.Argument(
        None,
        help="The name used for your organization. Optional when passing --org-id.",
    ),
    org_id: str | None = typer.Option(None, "--org-id", help="The id of your organization"),
    no_prompt: bool = typer.Option(False, "--no-prompt", help="Disable prompt to bypass interactive UI"),
    integration_testing: bool = typer.Option(
        False,
        "--integration-testing",
        hidden=True,
        help="Enable test mode to bypass interactive UI",
    ),
) -> None:
    _invoke_from_locals(ctx, cmd_namespace_create, locals() | {"show_help": lambda: _echo_help(ctx)})


@namespace_app.command("rename", help="Rename a namespace. The old name is kept as an alias.")
def namespace_rename(
    ctx: typer.Context,
    old_name: str = typer.Argument(..., help="The current name of the namespace"),
    new_name: str = typer.Argument(..., help="The new name for the namespace"),
    no_prompt: bool = typer.Option(False, "--no-prompt", help="Disable prompt to bypass interactive UI"),
    integration_testing: bool = typer.Option(
        False,
        "--integration-testing",
        hidden=True,
        help="Enable test mode to bypass interactive UI",
    ),
) -> None:
    _invoke_from_locals(ctx, cmd_namespace_rename, locals())


@namespace_app.command("delete-alias", help="Delete a namespace alias left behind by a rename.")
def namespace_delete_alias(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="The alias to delete"),
    no_prompt: bool = typer.Option(False, "--no-prompt", help="Disable prompt to bypass interactive UI"),
    integration_testing: bool = typer.Option(
        False,
        "--integration-testing",
        hidden=True,
        help="Enable test mode to bypass interactive UI",
    ),
) -> None:
    _invoke_from_locals(ctx, cmd_namespace_delete_alias, locals())


def _bootstrap_env() -> None:
    # python-dotenv defaults: discover .env without overriding exported values.
    load_dotenv()


def _run_cli(*, root_app: typer.Typer, prog_name: str, argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    _bootstrap_env()
    try:
        result = root_app(args=argv, prog_name=prog_name, standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.exceptions.Abort:
        _rich_error("aborted")
        return 1
    except click.ClickException as e:
        if isinstance(e, click.UsageError):
            _render_usage_error_with_help(message=e.format_message(), ctx=getattr(e, "ctx", None))
            return int(e.exit_code)
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _render_usage_error_with_help(
            message=str(e),
            fallback_help=_root_help_text(root_app=root_app, prog_name=prog_name),
        )
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


def main(argv: list[str] | None = None) -> int:
    return _run_cli(root_app=app, prog_name="policyadmin", argv=argv)


if __name__ == "__main__":
    raise SystemExit(main())
