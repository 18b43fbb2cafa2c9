"""Worker ownership by identifier convention.

Worker ids are built as ``{tenant}_{suffix}``. Registry entries carry an
explicit ``tenant_id``; the helpers here are the fallback for entries
registered without one (ids that predate explicit tenancy).

Known ambiguity: matching is a literal prefix test, so a tenant whose id is
a prefix of another tenant's id (``ann`` / ``anna``) also matches the longer
tenant's workers.
"""

from __future__ import annotations

from typing import Optional

SEPARATOR = "_"


def make_worker_id(tenant_id: str, suffix: str) -> str:
    return f"{tenant_id}{SEPARATOR}{suffix}"


def owner_of(worker_id: str, legacy_tenant_id: str) -> str:
    """Owning tenant inferred from the id; the legacy tenant when there is no separator."""
    head, sep, _ = worker_id.rpartition(SEPARATOR)
    if not sep or not head:
        return legacy_tenant_id
    return head


def has_tenant_prefix(worker_id: str) -> bool:
    """True when an ``@`` (email-shaped tenant id) appears before the first separator.

    A separator at position 0 does not end the scan.
    """
    for index, char in enumerate(worker_id):
        if char == "@":
            return True
        if char == SEPARATOR and index > 0:
            break
    return False


def belongs_to_tenant(worker_id: str, tenant_id: str, legacy_tenant_id: str) -> bool:
    if worker_id.startswith(tenant_id):
        return True
    # Legacy tenant owns every id without an email-shaped prefix
    return tenant_id == legacy_tenant_id and not has_tenant_prefix(worker_id)


def entry_belongs_to_tenant(
    worker_id: str,
    entry_tenant_id: Optional[str],
    tenant_id: str,
    legacy_tenant_id: str,
) -> bool:
    """Ownership test for a registry entry: explicit tenant first, id heuristic otherwise."""
    if entry_tenant_id is not None:
        return entry_tenant_id == tenant_id
    return belongs_to_tenant(worker_id, tenant_id, legacy_tenant_id)
