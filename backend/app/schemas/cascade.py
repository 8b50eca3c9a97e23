"""
Cascade schemas.
"""

from pydantic import BaseModel, Field
from typing import List


class PassengerRemovalRequest(BaseModel):
    """Passengers (via-traveler links) about to be destroyed."""
    passenger_ids: List[int] = Field(default_factory=list, description="IDs of vias_travelers rows")

    @property
    def unique_ids(self) -> List[int]:
        return sorted(set(self.passenger_ids))


class CascadeReport(BaseModel):
    """Rows touched by a cascade."""
    destroyed_passengers: List[int] = []
    destroyed_riders: List[int] = []
    destroyed_rides: List[int] = []
    destroyed_tasks: List[int] = []
    removed_members: List[int] = []  # tasks_vias_travelers rows
    released_addresses: List[int] = []
    destroyed_vias: List[int] = []

    def merge(self, other: "CascadeReport") -> "CascadeReport":
        for field in type(self).model_fields:
            merged = sorted(set(getattr(self, field)) | set(getattr(other, field)))
            setattr(self, field, merged)
        return self
