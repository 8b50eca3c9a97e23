"""
Address locator.

Maps a geolocated address to its country, state and city using the
details returned by a geocoder. Unknown cities are created on the fly.
"""

import logging
import re
import unicodedata
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import InvalidInputError
from backend.app.models.address import Address
from backend.app.models.geo import City
from backend.app.schemas.geo import AddressDetails
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("companion")

DEFAULT_COUNTRY_CODE = "US"


class Geocoder(Protocol):
    """External reverse-geocoding lookup."""

    async def resolve_address_details(self, latitude: float, longitude: float) -> AddressDetails:
        ...


def lookup_name(name: str) -> str:
    """Accent-free, lowercase, alphanumeric form of a city name."""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return re.sub(r"[^a-z0-9]+", "", stripped.lower())


class AddressLocator:
    """Resolves the administrative units of addresses."""

    def __init__(self, db: AsyncSession, geocoder: Optional[Geocoder] = None):
        self.db = db
        self.geocoder = geocoder

    async def find_city(self, country_code: str, state_code: Optional[str], name: str) -> Optional[City]:
        query = select(City).where(
            City.country_code == country_code,
            City.lookup_name == lookup_name(name)
        )
        if state_code:
            query = query.where(City.state_code == state_code)
        result = await self.db.execute(query.order_by(City.id).limit(1))
        return result.scalar_one_or_none()

    async def locate(self, address: Address, details: Optional[AddressDetails] = None) -> Address:
        """
        Fill the street, postcode and city of `address`.

        When no details are given, the geocoder is asked for them.

        Raises:
            InvalidInputError: no details given and no geocoder configured
        """
        if details is None:
            if self.geocoder is None:
                raise InvalidInputError(
                    "Address details are required when no geocoder is configured",
                    details={"address_id": address.id}
                )
            details = await self.geocoder.resolve_address_details(address.latitude, address.longitude)

        address.street_name = details.street_name
        address.street_number = details.street_number
        address.postcode = details.postcode
        address.locator = details.locator
        address.provider = details.provider

        country_code = (details.country_code or DEFAULT_COUNTRY_CODE).upper()
        state_code = details.state_code.upper() if details.state_code else None
        address.country_code = country_code
        address.state_code = state_code

        city = None
        if details.city_name and lookup_name(details.city_name):
            city = await self.find_city(country_code, state_code, details.city_name)
            if city is None:
                city = City(
                    name=details.city_name,
                    lookup_name=lookup_name(details.city_name),
                    country_code=country_code,
                    state_code=state_code,
                    latitude=address.latitude,
                    longitude=address.longitude,
                )
                self.db.add(city)
                await self.db.flush()
                await log_event(
                    self.db,
                    AuditAction.CITY_CREATED,
                    target_type="city",
                    target_id=city.id,
                    metadata={"name": city.name, "country_code": country_code}
                )
                logger.info("City created", extra={"city_id": city.id, "country_code": country_code})

        address.city_id = city.id if city else None
        if address.id is None:
            self.db.add(address)
        await self.db.flush()
        return address
