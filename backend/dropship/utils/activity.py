"""Lightweight helper for recording audit entries.

Usage:
    await log_activity(
        db, actor, action="status_changed", entity_type="dropship_order",
        entity_id=order.id, summary="pending → sent_to_supplier",
        details={"from": "pending", "to": "sent_to_supplier"},
    )

The row is added to the current session and committed with the
enclosing transaction; no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from dropship.auth.deps import Actor
from dropship.models.activity_log import ActivityLog


async def log_activity(
    db: AsyncSession,
    actor: Actor,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    entry = ActivityLog(
        actor_id=actor.id,
        actor_name=actor.name,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        details=details,
    )
    db.add(entry)
