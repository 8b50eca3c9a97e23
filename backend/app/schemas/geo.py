"""
Geocoding schemas.

Result contract of the external geocoding lookup.
"""

from pydantic import BaseModel, Field
from typing import Optional


class AddressDetails(BaseModel):
    """Details resolved by a geocoder for a point."""
    street_name: Optional[str] = None
    street_number: Optional[str] = None
    city_name: Optional[str] = None
    state_code: Optional[str] = None
    country_code: Optional[str] = Field(None, min_length=2, max_length=2)
    postcode: Optional[str] = None
    locator: Optional[str] = None
    provider: Optional[str] = None
