"""
Address database models.

Addresses are geocoded points mapped to a city. They are shared between
users, travelers, riders and tasks; an address is only removed once nothing
references it anymore.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey
from backend.app.db.session import Base


class Address(Base):
    """Address model."""
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Geolocation
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    locator = Column(String(100), nullable=True)
    provider = Column(String(20), nullable=True)

    # Details
    street_name = Column(String(100), nullable=True)
    street_number = Column(String(10), nullable=True)
    postcode = Column(String(20), nullable=True)

    # Resolved administrative units
    city_id = Column(Integer, ForeignKey('cities.id'), nullable=True, index=True)
    state_code = Column(String(10), nullable=True)
    country_code = Column(String(2), nullable=True)

    def __repr__(self):
        return f"<Address(id={self.id}, city_id={self.city_id}, lat={self.latitude}, lng={self.longitude})>"


class UserAddress(Base):
    """Address saved by a user."""
    __tablename__ = "users_addresses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    address_id = Column(Integer, ForeignKey('addresses.id'), nullable=False, index=True)
    alias = Column(String(8), nullable=False, default="home")


class TravelerAddress(Base):
    """Address saved for a traveler."""
    __tablename__ = "travelers_addresses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    traveler_id = Column(Integer, ForeignKey('travelers.id'), nullable=False, index=True)
    address_id = Column(Integer, ForeignKey('addresses.id'), nullable=False, index=True)
    alias = Column(String(8), nullable=False, default="home")
