"""
Geographic cluster models.

Agglos are metropolitan clusters; neighborhoods belong to exactly one agglo
and are reachable from a city either directly (default city, "sub hoods")
or through the township relation ("suburbs").
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, UniqueConstraint
from backend.app.db.session import Base


class Agglo(Base):
    """Agglomeration model."""
    __tablename__ = "agglos"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    def __repr__(self):
        return f"<Agglo(id={self.id}, name='{self.name}')>"


class City(Base):
    """City model."""
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    lookup_name = Column(String(100), nullable=False, index=True)
    country_code = Column(String(2), nullable=False, index=True)
    state_code = Column(String(10), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    def __repr__(self):
        return f"<City(id={self.id}, name='{self.name}', country='{self.country_code}')>"


class Neighborhood(Base):
    """Neighborhood model."""
    __tablename__ = "neighborhoods"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    agglo_id = Column(Integer, ForeignKey('agglos.id'), nullable=False, index=True)
    default_city_id = Column(Integer, ForeignKey('cities.id'), nullable=True, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    suburb = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<Neighborhood(id={self.id}, name='{self.name}', agglo_id={self.agglo_id})>"


class NeighborhoodCity(Base):
    """Township relation: a suburb neighborhood serving a city."""
    __tablename__ = "neighborhoods_cities"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    neighborhood_id = Column(Integer, ForeignKey('neighborhoods.id'), nullable=False, index=True)
    city_id = Column(Integer, ForeignKey('cities.id'), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint('neighborhood_id', 'city_id', name='uq_neighborhoods_cities'),
    )


class Airport(Base):
    """Airport model, keyed by IATA code."""
    __tablename__ = "airports"

    id = Column(String(4), primary_key=True)
    name = Column(String(100), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    primary_agglo_id = Column(Integer, ForeignKey('agglos.id'), nullable=True)

    def __repr__(self):
        return f"<Airport(id='{self.id}', name='{self.name}')>"


class AirportAgglo(Base):
    """Explicit list of agglos served by an airport."""
    __tablename__ = "airports_agglos"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    airport_id = Column(String(4), ForeignKey('airports.id'), nullable=False, index=True)
    agglo_id = Column(Integer, ForeignKey('agglos.id'), nullable=False, index=True)
