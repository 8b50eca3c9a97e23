"""
Ride database models.

A ride is a matched group of riders. Membership rows (RideRider) carry the
rider's status within the ride; pending applications carry a request and
possibly a counter-request.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.companion_enums import RideStatus, RideType, RideWay


class Ride(Base):
    """Ride model."""
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    status = Column(Enum(RideStatus), default=RideStatus.OPEN, nullable=True, index=True)
    ride_type = Column(Enum(RideType), default=RideType.SHARE_CAB, nullable=False)
    toward = Column(Enum(RideWay), default=RideWay.TO_CITY, nullable=False)

    # Capacity
    seat_count = Column(Integer, default=3, nullable=False)
    luggage_count = Column(Integer, default=3, nullable=False)

    # Usage by current members
    used_seat_count = Column(Integer, default=0, nullable=False)
    used_luggage_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Ride(id={self.id}, type='{self.ride_type}', status='{self.status}')>"


class RideRiderRequest(Base):
    """Pending request (or counter-request) attached to an application."""
    __tablename__ = "ride_rider_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey('rides.id'), nullable=False, index=True)
    rider_id = Column(Integer, ForeignKey('riders.id'), nullable=False, index=True)
    message = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
