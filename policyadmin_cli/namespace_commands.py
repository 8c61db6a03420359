from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass, field
from typing import Callable, Union

from . import namespace_api
from .auth_inputs import AuthInputError, validate_token
from .cli_shared import GlobalOpts, UsageError
from .prompt import ConfirmationUI, FixedConfirmationUI, InteractiveConfirmationUI
from .transport import GraphQLClient

_OPEN_ORBS_NOTE = "Please note that any orbs you publish in this namespace are open orbs and are world-readable."


@dataclass
class NamespaceOptions:
    cl: GraphQLClient
    args: list[str]
    tty: ConfirmationUI = field(default_factory=InteractiveConfirmationUI)
    # Skips the y/n confirmation.
    no_prompt: bool = False
    org_id: str | None = None
    show_help: Callable[[], None] | None = None


@dataclass(frozen=True)
class CreateByOrgID:
    name: str
    org_id: str


@dataclass(frozen=True)
class CreateByVcsOrgName:
    name: str
    vcs_type: str
    org_name: str


@dataclass(frozen=True)
class InsufficientArgs:
    pass


CreateMode = Union[CreateByOrgID, CreateByVcsOrgName, InsufficientArgs]


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def resolve_create_mode(args: list[str], org_id: str | None) -> CreateMode:
    if not args:
        return InsufficientArgs()
    org = (org_id or "").strip()
    if org and _is_uuid(org):
        return CreateByOrgID(name=args[0], org_id=org)
    if len(args) == 3:
        return CreateByVcsOrgName(name=args[0], vcs_type=args[1], org_name=args[2])
    return InsufficientArgs()


def build_graphql_client(g: GlobalOpts) -> GraphQLClient:
    return GraphQLClient(g)


def _confirmed(opts: NamespaceOptions, message: str) -> bool:
    return opts.no_prompt or opts.tty.ask_user_to_confirm(message)


def _print_created(name: str) -> None:
    sys.stdout.write(f"Namespace `{name}` created.\n")
    sys.stdout.write(_OPEN_ORBS_NOTE + "\n")


def create_namespace_with_org_id(opts: NamespaceOptions, mode: CreateByOrgID) -> int:
    if not opts.no_prompt:
        sys.stdout.write(
            f'You are creating a namespace called "{mode.name}".\n\n'
            f"This is the only namespace permitted for your organization with id {mode.org_id}.\n\n"
            "To change the namespace, you will have to contact customer support.\n\n"
        )
    if _confirmed(opts, f"Are you sure you wish to create the namespace: `{mode.name}`"):
        namespace_api.create_namespace_with_owner_id(opts.cl, mode.name, mode.org_id)
        _print_created(mode.name)
    return 0


def create_namespace_with_vcs_type_and_org_name(opts: NamespaceOptions, mode: CreateByVcsOrgName) -> int:
    if not opts.no_prompt:
        sys.stdout.write(
            f'You are creating a namespace called "{mode.name}".\n\n'
            f"This is the only namespace permitted for your {mode.vcs_type.lower()} organization, {mode.org_name}.\n\n"
            "To change the namespace, you will have to contact customer support.\n\n"
        )
    if _confirmed(opts, f"Are you sure you wish to create the namespace: `{mode.name}`"):
        namespace_api.create_namespace(opts.cl, mode.name, mode.org_name, mode.vcs_type.upper())
        _print_created(mode.name)
    return 0


def create_namespace(opts: NamespaceOptions) -> int:
    mode = resolve_create_mode(opts.args, opts.org_id)
    if isinstance(mode, CreateByOrgID):
        return create_namespace_with_org_id(opts, mode)
    if isinstance(mode, CreateByVcsOrgName):
        return create_namespace_with_vcs_type_and_org_name(opts, mode)
    # Not enough to pick a creation mode: show help and succeed.
    if opts.show_help is not None:
        opts.show_help()
    return 0


def rename_namespace(opts: NamespaceOptions) -> int:
    old_name, new_name = opts.args[0], opts.args[1]
    if _confirmed(opts, f"Are you sure you wish to rename the namespace `{old_name}` to `{new_name}`?"):
        namespace_api.rename_namespace(opts.cl, old_name, new_name)
        sys.stdout.write(
            f"Namespace `{old_name}` renamed to `{new_name}`. `{old_name}` is an alias for `{new_name}` "
            f"so existing usages will continue to work, unless you delete the `{old_name}` alias "
            f"with `namespace delete-alias {old_name}`\n"
        )
    return 0


def delete_namespace_alias(opts: NamespaceOptions) -> int:
    alias_name = opts.args[0]
    message = (
        f"Are you sure you wish to delete the namespace alias {alias_name}? You should make sure that "
        "all configs and orbs that refer to it this way are updated to the new name first."
    )
    if _confirmed(opts, message):
        namespace_api.delete_namespace_alias(opts.cl, alias_name)
        sys.stdout.write(f"Namespace alias `{alias_name}` deleted.\n")
    return 0


def _namespace_options(args: argparse.Namespace, g: GlobalOpts, positional: list[str]) -> NamespaceOptions:
    try:
        validate_token(g.token)
    except AuthInputError as e:
        raise UsageError(str(e)) from e
    tty: ConfirmationUI = FixedConfirmationUI(confirm=True) if args.integration_testing else InteractiveConfirmationUI()
    return NamespaceOptions(
        cl=build_graphql_client(g),
        args=positional,
        tty=tty,
        no_prompt=bool(args.no_prompt),
        org_id=getattr(args, "org_id", None),
        show_help=getattr(args, "show_help", None),
    )


def cmd_namespace_create(args: argparse.Namespace, g: GlobalOpts) -> int:
    positional = [a for a in (args.name, args.vcs_type, args.org_name) if a is not None]
    return create_namespace(_namespace_options(args, g, positional))


def cmd_namespace_rename(args: argparse.Namespace, g: GlobalOpts) -> int:
    return rename_namespace(_namespace_options(args, g, [args.old_name, args.new_name]))


def cmd_namespace_delete_alias(args: argparse.Namespace, g: GlobalOpts) -> int:
    return delete_namespace_alias(_namespace_options(args, g, [args.name]))
