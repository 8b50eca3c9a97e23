"""
Itinerary schemas.

Request and result structs for reordering the vias of a trip.
"""

from pydantic import BaseModel, Field, model_validator
from typing import List

from backend.app.core.engine_config import MAX_VIAS_PER_TRIP
from backend.app.models.trip import Trip
from backend.app.models.via import Via


class ViaReorderRequest(BaseModel):
    """
    Desired itinerary of a trip.

    `final_vias` is the target order (index = ordinal) of surviving and new
    vias; `removed_vias` are destroyed before any ordinal moves.
    """
    trip: Trip
    final_vias: List[Via] = Field(default_factory=list, max_length=MAX_VIAS_PER_TRIP)
    removed_vias: List[Via] = Field(default_factory=list)

    class Config:
        arbitrary_types_allowed = True

    @model_validator(mode="after")
    def check_vias(self):
        kept_ids = set()
        seen = set()
        for via in self.final_vias:
            if id(via) in seen or (via.id is not None and via.id in kept_ids):
                raise ValueError(f"Via {via.id} appears twice in the final order")
            seen.add(id(via))
            if via.id is not None:
                kept_ids.add(via.id)

        for via in self.removed_vias:
            if via.id is None:
                raise ValueError("Cannot remove a via that was never saved")
            if via.id in kept_ids or id(via) in seen:
                raise ValueError(f"Via {via.id} is both kept and removed")

        for via in self.final_vias + self.removed_vias:
            if via.trip_id is not None and via.trip_id != self.trip.id:
                raise ValueError(f"Via {via.id} belongs to trip {via.trip_id}, not {self.trip.id}")

        return self


class ReconciledItinerary(BaseModel):
    """Outcome of a reconciliation."""
    trip: Trip
    vias: List[Via]
    writes: int = 0  # Ordinal writes issued (inserts included)
    conflicted: List[int] = []  # IDs of vias that went through a temporary ordinal

    class Config:
        arbitrary_types_allowed = True
