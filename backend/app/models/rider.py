"""
Rider database models.

A rider is a traveler group's request to share ground transportation for
one leg. Its traveler links point at passengers; its user links are derived
from those traveler links.
"""

from sqlalchemy import Column, Integer, Date, Time, ForeignKey, Enum, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.companion_enums import RideWay


class Rider(Base):
    """
    Rider model.

    A rider with no traveler link left is meaningless and gets destroyed by
    the passenger cascade.
    """
    __tablename__ = "riders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    via_id = Column(Integer, ForeignKey('vias.id'), nullable=False, index=True)
    address_id = Column(Integer, ForeignKey('addresses.id'), nullable=True, index=True)

    toward = Column(Enum(RideWay), default=RideWay.TO_CITY, nullable=False)
    date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=True)

    # Requirements
    seat_count = Column(Integer, default=1, nullable=False)
    luggage_count = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Rider(id={self.id}, via_id={self.via_id}, toward='{self.toward}')>"


class RiderTraveler(Base):
    """Link between a rider and one of the passengers it carries."""
    __tablename__ = "riders_travelers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    rider_id = Column(Integer, ForeignKey('riders.id'), nullable=False, index=True)
    traveler_id = Column(Integer, ForeignKey('travelers.id'), nullable=False, index=True)
    via_traveler_id = Column(Integer, ForeignKey('vias_travelers.id'), nullable=False, index=True)

    def __repr__(self):
        return f"<RiderTraveler(rider_id={self.rider_id}, via_traveler_id={self.via_traveler_id})>"


class RiderUser(Base):
    """Link between a rider and a user; derived from traveler links only."""
    __tablename__ = "riders_users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    rider_id = Column(Integer, ForeignKey('riders.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint('rider_id', 'user_id', name='uq_riders_users'),
    )
