"""
RideRider database model.

Membership of a rider in a ride. At most one row per rider may hold a
"current" status (RIDER_UNIQUES) and at most one row per ride may hold an
"owner" status (RIDE_UNIQUES).
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum
from backend.app.db.session import Base
from backend.app.models.companion_enums import RiderStatus, RIDE_UNIQUES, RIDER_UNIQUES
from backend.app.core.engine_config import RIDER_STATUS_PRIORITY, DEFAULT_STATUS_PRIORITY


def status_priority(status) -> int:
    """Numeric rank of a rider status, lower ranks first."""
    if status is None:
        return DEFAULT_STATUS_PRIORITY
    return RIDER_STATUS_PRIORITY.get(RiderStatus(status), DEFAULT_STATUS_PRIORITY)


class RideRider(Base):
    """RideRider model."""
    __tablename__ = "rides_riders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    ride_id = Column(Integer, ForeignKey('rides.id'), nullable=False, index=True)
    rider_id = Column(Integer, ForeignKey('riders.id'), nullable=False, index=True)

    status = Column(Enum(RiderStatus), default=RiderStatus.JOINED, nullable=False, index=True)
    joined_at = Column(DateTime, nullable=True)  # Naive UTC

    # Pending application
    request_id = Column(Integer, ForeignKey('ride_rider_requests.id'), nullable=True)
    counter_id = Column(Integer, ForeignKey('ride_rider_requests.id'), nullable=True)

    @property
    def is_current(self) -> bool:
        return self.status in RIDER_UNIQUES

    @property
    def is_main_rider(self) -> bool:
        return self.status in RIDE_UNIQUES

    def compare_to(self, other: "RideRider") -> int:
        """
        Order by status priority, then by join time (earlier joiners first).

        Rows without a join time rank after those that have one.
        """
        p1 = status_priority(self.status)
        p2 = status_priority(other.status)
        if p1 != p2:
            return p1 - p2

        if self.joined_at == other.joined_at:
            return 0
        if self.joined_at is None:
            return 1
        if other.joined_at is None:
            return -1
        return -1 if self.joined_at < other.joined_at else 1

    def __repr__(self):
        return f"<RideRider(id={self.id}, ride_id={self.ride_id}, rider_id={self.rider_id}, status='{self.status}')>"
