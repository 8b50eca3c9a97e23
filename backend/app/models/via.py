"""
Via database model.

A via is one leg of a trip: departure and arrival airport, terminal and time.
"""

from sqlalchemy import Column, Integer, String, Date, Time, ForeignKey, UniqueConstraint
from backend.app.db.session import Base


class Via(Base):
    """
    Via model.

    `ordinal` is the position of the leg in its trip. Ordinals of a trip are
    unique (DB constraint), so reordering must go through the reconciler.
    """
    __tablename__ = "vias"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Trip reference
    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=False, index=True)
    ordinal = Column(Integer, nullable=False, default=0)

    # Departure
    dep_airport_id = Column(String(4), ForeignKey('airports.id'), nullable=True)
    dep_terminal = Column(String(10), nullable=True)
    dep_date = Column(Date, nullable=True)
    dep_time = Column(Time, nullable=True)

    # Arrival
    arr_airport_id = Column(String(4), ForeignKey('airports.id'), nullable=True)
    arr_terminal = Column(String(10), nullable=True)
    arr_date = Column(Date, nullable=True)
    arr_time = Column(Time, nullable=True)

    flight_code = Column(String(10), nullable=True)

    __table_args__ = (
        UniqueConstraint('trip_id', 'ordinal', name='uq_vias_trip_ordinal'),
    )

    def __repr__(self):
        return f"<Via(id={self.id}, trip_id={self.trip_id}, ordinal={self.ordinal})>"
