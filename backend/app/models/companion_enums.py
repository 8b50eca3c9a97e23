"""
Status vocabularies for trips, rides and help tasks.
"""

import enum


class BookingStatus(str, enum.Enum):
    """Booking status of a passenger on a via."""
    MANUAL = "manual"
    CONFIRMED = "confirmed"
    AUTO = "auto"
    AUTO_CONFIRMED = "autoconfirmed"
    GDS_CONFIRM = "gdsconfirm"
    AGENT_CONFIRM = "agentconfirm"


class RideWay(str, enum.Enum):
    """Direction of a ride relative to the airport."""
    TO_CITY = "city"
    TO_AIRPORT = "airport"


class RideStatus(str, enum.Enum):
    """Ride status enumeration."""
    OPEN = "open"  # Accepting applications
    CLOSED = "closed"
    FULL = "full"  # Every seat taken
    DISABLED = "disabled"


RIDE_SEARCHABLES = frozenset({RideStatus.OPEN, RideStatus.FULL})


class RideType(str, enum.Enum):
    """Ride type enumeration."""
    SHARE_CAB = "shareCab"
    CAB_RIDE = "cabRide"
    OWN_CAR = "ownCar"
    RENTAL_CAR = "rentalCar"
    RELATIVE_CAR = "relativeCar"


class RiderStatus(str, enum.Enum):
    """Status of a rider within a ride (RideRider row)."""
    DRIVER = "driver"
    PROVIDER = "provider"
    OWNER = "owner"
    ADMIN = "admin"
    JOINED = "joined"
    APPLIED = "applied"
    DENIED = "denied"
    SAVED = "saved"
    LEFT = "left"
    SUSPEND = "suspend"  # Parked off an active ride, slot kept
    NONE = "none"


# Row represents the ride's creator/anchor: at most one per ride
RIDE_UNIQUES = frozenset({RiderStatus.DRIVER, RiderStatus.PROVIDER, RiderStatus.OWNER})

# Rider actively participates in the ride: at most one per rider
RIDER_UNIQUES = frozenset({
    RiderStatus.DRIVER, RiderStatus.PROVIDER, RiderStatus.OWNER,
    RiderStatus.ADMIN, RiderStatus.JOINED,
})

# The ride cannot exist without this member
KEY_RIDERS = frozenset({RiderStatus.DRIVER, RiderStatus.PROVIDER})

ALLOW_APPROVE = frozenset({
    RiderStatus.DRIVER, RiderStatus.PROVIDER, RiderStatus.OWNER, RiderStatus.ADMIN,
})

KILLABLE = frozenset({RiderStatus.APPLIED, RiderStatus.DENIED})


class TaskStatus(str, enum.Enum):
    """Task status enumeration."""
    OPEN = "open"
    CLOSED = "closed"
    DISABLED = "disabled"


class HelpStatus(str, enum.Enum):
    """Status of a via-linked member of a task."""
    HELPER = "helper"
    HELPEE = "helpee"
    BACKUP = "backup"
    APPLIED = "applied"
    INVITED = "invited"
    PULLED = "pulled"  # Application pulled by the helper
    CONTACTED = "contacted"
    CANCELLED = "cancelled"  # Admission rescinded by a helpee
    INCOMPATIBLE = "incompatible"  # Helper's via no longer compatible with the task


# Memberships a task still values once reviewed publicly
PUBLIC_REVIEW = frozenset({HelpStatus.HELPER, HelpStatus.HELPEE, HelpStatus.BACKUP})

TASKERS = frozenset({HelpStatus.HELPER, HelpStatus.BACKUP})
