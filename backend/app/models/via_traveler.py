"""
ViaTraveler database model.

n-to-m link between a via and a traveler, also known as a "passenger".
Deleting passengers is what cascades into riders and task memberships.
"""

from sqlalchemy import Column, Integer, Boolean, ForeignKey, Enum, UniqueConstraint
from backend.app.db.session import Base
from backend.app.models.companion_enums import BookingStatus


class ViaTraveler(Base):
    """Passenger model."""
    __tablename__ = "vias_travelers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    via_id = Column(Integer, ForeignKey('vias.id'), nullable=False, index=True)
    traveler_id = Column(Integer, ForeignKey('travelers.id'), nullable=False, index=True)

    booking_status = Column(Enum(BookingStatus), default=BookingStatus.MANUAL, nullable=True)
    volunteer = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint('via_id', 'traveler_id', name='uq_vias_travelers'),
    )

    def __repr__(self):
        return f"<ViaTraveler(id={self.id}, via_id={self.via_id}, traveler_id={self.traveler_id})>"
