"""Lightweight helper for recording activity log entries.

Usage:
    await log_activity(
        db, action="reassigned", entity_type="box",
        entity_id=new_id, summary="Box 12 renamed to 14",
    )

The row is added to the current session and committed with the
enclosing transaction; no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.models.activity_log import ActivityLog


async def log_activity(
    db: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    entry = ActivityLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        details=details,
    )
    db.add(entry)
