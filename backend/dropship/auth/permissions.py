"""Granular permission system for dropship administration.

Design:
  - Each role has a set of DEFAULT permissions (defined here, not in DB).
  - Per-user overrides ({perm: True/False}) are applied on top by
    `resolve_permissions(role, custom_overrides)`.
  - The effective set is embedded in the JWT so checks are token-only.

Permission naming: `<resource>.<action>`
  Resources: dropship, supplier, integration, supplier_product, mapping
  Actions:   read, write, delete, plus workflow verbs (cancel, retry, sync…)
"""

from __future__ import annotations


# ── All known permissions ───────────────────────────────────

ALL_PERMISSIONS: set[str] = {
    # Dropship orders
    "dropship.read",
    "dropship.write",          # create, edit, send, confirm, ship, deliver
    "dropship.delete",
    "dropship.cancel",
    "dropship.retry",
    "dropship.bulk",           # bulk status updates
    "dropship.analytics",      # stats dashboard

    # Suppliers
    "supplier.read",
    "supplier.write",
    "supplier.delete",
    "supplier.test",           # connection tests

    # Supplier integrations
    "integration.read",
    "integration.write",
    "integration.delete",
    "integration.test",
    "integration.sync",

    # Supplier catalog
    "supplier_product.read",
    "supplier_product.write",
    "supplier_product.delete",
    "supplier_product.bulk",
    "supplier_product.map",

    # Product ↔ supplier mappings
    "mapping.read",
    "mapping.manage",
}


# ── Role → default permissions ──────────────────────────────

ROLE_DEFAULTS: dict[str, set[str]] = {
    "administrator": ALL_PERMISSIONS.copy(),

    "manager": {
        "dropship.read", "dropship.write", "dropship.cancel",
        "dropship.retry", "dropship.bulk", "dropship.analytics",
        "supplier.read", "supplier.write", "supplier.test",
        "integration.read", "integration.test", "integration.sync",
        "supplier_product.read", "supplier_product.write",
        "supplier_product.bulk", "supplier_product.map",
        "mapping.read", "mapping.manage",
    },

    "operator": {
        "dropship.read", "dropship.write",
        "supplier.read",
        "integration.read",
        "supplier_product.read",
        "mapping.read",
    },
}


# ── Resolution ──────────────────────────────────────────────

def resolve_permissions(
    role: str,
    custom_overrides: dict[str, bool] | None = None,
) -> list[str]:
    """Compute effective permissions for a user.

    1. Start with the role's defaults.
    2. Apply custom_overrides: {perm: True} adds, {perm: False} removes.
    3. Return a sorted list (for stable JWT claims).
    """
    base = ROLE_DEFAULTS.get(role, set()).copy()

    if custom_overrides:
        for perm, granted in custom_overrides.items():
            if perm not in ALL_PERMISSIONS:
                continue
            if granted:
                base.add(perm)
            else:
                base.discard(perm)

    return sorted(base)


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement.

    `*` grants everything; `<resource>.*` grants every action on a resource.
    """
    if "*" in user_permissions or required in user_permissions:
        return True
    resource = required.split(".", 1)[0]
    return f"{resource}.*" in user_permissions
