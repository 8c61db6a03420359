from __future__ import annotations

from typing import Any

from .cli_shared import OpError
from .transport import GraphQLClient

_ORGANIZATION_ID_QUERY = """
query($organizationName: String!, $organizationVcs: VCSType!) {
  organization(name: $organizationName, vcsType: $organizationVcs) {
    id
  }
}
"""

_NAMESPACE_ID_QUERY = """
query($name: String!) {
  registryNamespace(name: $name) {
    id
  }
}
"""

_CREATE_NAMESPACE_MUTATION = """
mutation($name: String!, $organizationId: UUID!) {
  createNamespace(name: $name, organizationId: $organizationId) {
    namespace {
      id
    }
    errors {
      message
      type
    }
  }
}
"""

_RENAME_NAMESPACE_MUTATION = """
mutation($namespaceId: UUID!, $newName: String!) {
  renameNamespace(namespaceId: $namespaceId, newName: $newName) {
    namespace {
      id
    }
    errors {
      message
      type
    }
  }
}
"""

_DELETE_NAMESPACE_ALIAS_MUTATION = """
mutation($name: String!) {
  deleteNamespaceAlias(name: $name) {
    deleted
    errors {
      type
      message
    }
  }
}
"""


def _payload(data: dict[str, Any], field: str) -> dict[str, Any]:
    payload = data.get(field)
    if not isinstance(payload, dict):
        raise OpError(f"invalid graphql response: missing {field}")
    errors = payload.get("errors") or []
    if isinstance(errors, list) and errors:
        messages = [str(e.get("message") if isinstance(e, dict) else e).strip() for e in errors]
        raise OpError("\n".join(m for m in messages if m) or f"{field} failed")
    return payload


def organization_id(cl: GraphQLClient, org_name: str, vcs_type: str) -> str:
    data = cl.run(
        _ORGANIZATION_ID_QUERY,
        {"organizationName": org_name, "organizationVcs": vcs_type.upper()},
    )
    org = data.get("organization")
    org_id = str(org.get("id") or "").strip() if isinstance(org, dict) else ""
    if not org_id:
        raise OpError(f"unable to find organization {org_name} of vcs-type {vcs_type}")
    return org_id


def namespace_id(cl: GraphQLClient, name: str) -> str:
    data = cl.run(_NAMESPACE_ID_QUERY, {"name": name})
    ns = data.get("registryNamespace")
    ns_id = str(ns.get("id") or "").strip() if isinstance(ns, dict) else ""
    if not ns_id:
        raise OpError(f"namespace {name} not found")
    return ns_id


def create_namespace_with_owner_id(cl: GraphQLClient, name: str, owner_id: str) -> dict[str, Any]:
    data = cl.run(_CREATE_NAMESPACE_MUTATION, {"name": name, "organizationId": owner_id})
    return _payload(data, "createNamespace")


def create_namespace(cl: GraphQLClient, name: str, org_name: str, vcs_type: str) -> dict[str, Any]:
    return create_namespace_with_owner_id(cl, name, organization_id(cl, org_name, vcs_type))


def rename_namespace(cl: GraphQLClient, old_name: str, new_name: str) -> dict[str, Any]:
    ns_id = namespace_id(cl, old_name)
    data = cl.run(_RENAME_NAMESPACE_MUTATION, {"namespaceId": ns_id, "newName": new_name})
    return _payload(data, "renameNamespace")


def delete_namespace_alias(cl: GraphQLClient, name: str) -> dict[str, Any]:
    data = cl.run(_DELETE_NAMESPACE_ALIAS_MUTATION, {"name": name})
    payload = _payload(data, "deleteNamespaceAlias")
    if not payload.get("deleted"):
        raise OpError(f"namespace alias {name} was not deleted")
    return payload
