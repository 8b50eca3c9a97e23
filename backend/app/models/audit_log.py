"""
Audit Log Database Model.

Tracks engine mutations (itinerary reorders, cascades, membership
transitions) so every destructive step can be traced afterwards.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for engine events.

    Events logged:
    - VIAS_REORDERED / VIAS_REMOVED
    - PASSENGERS_CASCADED
    - APPLICANT_DENIED / APPLICANT_REMOVED
    - RIDE_RIDER_UPGRADED / SUSPENDED_RIDE_REACTIVATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Member who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Entity the action applied to
    target_type = Column(String(50), nullable=True)
    target_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', target={self.target_type}:{self.target_id})>"
