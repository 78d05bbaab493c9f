"""Deletion guards — find downstream records that block a delete.

Each check returns a DeleteLock describing what is blocking and how to
unblock it, without raising.  Services turn a locked result into a
ConflictError.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.models.dropship_order import DropshipOrder, DropshipOrderItem, TERMINAL_STATUSES


# Supplier products may be removed once every order touching them is
# finished.  `refunded` is a terminal state on the parent order side.
SUPPLIER_PRODUCT_RELEASED_STATUSES = TERMINAL_STATUSES | {"refunded"}


# ── Data structures ────────────────────────────────────────────


@dataclass
class Blocker:
    blocker_type: str   # "dropship_order", "integration"
    blocker_id: str
    status: str


@dataclass
class DeleteLock:
    """Delete lock for an entity.  Empty blockers means deletable."""
    reason: str = ""
    unlock_hint: str = ""
    blockers: list[Blocker] = field(default_factory=list)

    @property
    def is_locked(self) -> bool:
        return len(self.blockers) > 0

    def blocker_ids(self) -> list[str]:
        return [b.blocker_id for b in self.blockers]


# ── SupplierProduct (downstream: open dropship orders) ────────


async def get_supplier_product_delete_lock(
    db: AsyncSession, supplier_product_id: str
) -> DeleteLock:
    rows = (
        await db.execute(
            select(DropshipOrder.id, DropshipOrder.status)
            .join(DropshipOrderItem, DropshipOrderItem.dropship_order_id == DropshipOrder.id)
            .where(
                DropshipOrderItem.supplier_product_id == supplier_product_id,
                DropshipOrder.status.notin_(SUPPLIER_PRODUCT_RELEASED_STATUSES),
            )
            .distinct()
        )
    ).all()

    info = DeleteLock()
    if rows:
        info.reason = "Supplier product is referenced by open dropship orders"
        info.unlock_hint = "Deliver or cancel those orders first."
        info.blockers = [
            Blocker(blocker_type="dropship_order", blocker_id=row.id, status=row.status)
            for row in rows
        ]
    return info


# ── Supplier (downstream: open dropship orders) ───────────────


async def get_supplier_delete_lock(db: AsyncSession, supplier_id: str) -> DeleteLock:
    rows = (
        await db.execute(
            select(DropshipOrder.id, DropshipOrder.status).where(
                DropshipOrder.supplier_id == supplier_id,
                DropshipOrder.status.notin_(TERMINAL_STATUSES),
            )
        )
    ).all()

    info = DeleteLock()
    if rows:
        info.reason = "Supplier has dropship orders in progress"
        info.unlock_hint = "Deliver or cancel those orders first."
        info.blockers = [
            Blocker(blocker_type="dropship_order", blocker_id=row.id, status=row.status)
            for row in rows
        ]
    return info
