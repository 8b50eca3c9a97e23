"""
Audit logging service for engine mutations.

Entries are flushed inside the caller's transaction: they are committed or
rolled back together with the change they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Itinerary
    VIAS_REORDERED = "VIAS_REORDERED"
    VIAS_REMOVED = "VIAS_REMOVED"

    # Cascades
    PASSENGERS_CASCADED = "PASSENGERS_CASCADED"
    RIDE_DESTROYED = "RIDE_DESTROYED"
    TASK_DESTROYED = "TASK_DESTROYED"

    # Ride membership
    RIDE_RIDER_UPGRADED = "RIDE_RIDER_UPGRADED"
    APPLICANT_DENIED = "APPLICANT_DENIED"
    APPLICANT_REMOVED = "APPLICANT_REMOVED"
    SUSPENDED_RIDE_REACTIVATED = "SUSPENDED_RIDE_REACTIVATED"

    # Geo
    CITY_CREATED = "CITY_CREATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record an engine event in the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of the member performing the action
        target_type: Kind of entity acted upon ("trip", "ride", ...)
        target_id: ID of the entity acted upon
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance (flushed, not committed)
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        target_type: Filter by entity kind
        target_id: Filter by entity ID
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if target_type:
        query = query.where(AuditLog.target_type == target_type)

    if target_id is not None:
        query = query.where(AuditLog.target_id == target_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
