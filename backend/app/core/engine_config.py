"""
Engine configuration for itinerary and membership consistency.

Tunables and ranking tables shared by the reconciler, the ride state machine
and the neighborhood matcher.
"""

from backend.app.models.companion_enums import RiderStatus, RideType

# Itinerary limits
MAX_VIAS_PER_TRIP = 1000  # Real ordinals always live in [0, MAX_VIAS_PER_TRIP)
TEMP_ORDINAL_BASE = MAX_VIAS_PER_TRIP  # Temporary ordinals: base + index in delayed list

# Ride membership ranking (lower sorts first)
RIDER_STATUS_PRIORITY = {
    RiderStatus.DRIVER: 0,
    RiderStatus.PROVIDER: 1,
    RiderStatus.OWNER: 2,
    RiderStatus.ADMIN: 10,
    RiderStatus.JOINED: 10,
    RiderStatus.APPLIED: 50,
    RiderStatus.DENIED: 90,
}
DEFAULT_STATUS_PRIORITY = 100  # saved, left, suspend, none

# Status granted to the creator (main rider) of a ride, per ride type
CREATOR_STATUS_BY_RIDE_TYPE = {
    RideType.OWN_CAR: RiderStatus.DRIVER,
    RideType.RENTAL_CAR: RiderStatus.DRIVER,
    RideType.CAB_RIDE: RiderStatus.DRIVER,
    RideType.RELATIVE_CAR: RiderStatus.PROVIDER,
}
DEFAULT_CREATOR_STATUS = RiderStatus.OWNER

# Geo matching
AGGLO_DISTANCE_UNIT_M = 1000  # Agglo scores are computed on kilometers
