"""
Ride membership schemas.
"""

from pydantic import BaseModel
from typing import List, Optional

from backend.app.models.ride import Ride
from backend.app.models.ride_rider import RideRider


class MembershipLookup(BaseModel):
    """
    Membership found for a rider, with its ride.

    Both fields are None when the rider has no such membership.
    """
    ride_rider: Optional[RideRider] = None
    ride: Optional[Ride] = None
    co_riders: List[RideRider] = []  # Only filled for a full (reset) lookup

    class Config:
        arbitrary_types_allowed = True

    @property
    def found(self) -> bool:
        return self.ride_rider is not None
