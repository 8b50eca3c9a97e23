"""
Ride membership state machine.

Governs a rider's status within a ride: applicants are denied or killed
off by a member holding approve rights, the creator of a ride is upgraded
to the status matching the ride type, and a rider parked off its own ride
("suspend") gets that ride back once it leaves the ride it joined.
"""

import logging
from datetime import datetime
from functools import cmp_to_key
from typing import Iterable, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import load_only

from backend.app.core.engine_config import CREATOR_STATUS_BY_RIDE_TYPE, DEFAULT_CREATOR_STATUS
from backend.app.core.exceptions import InvalidStateError, UnauthorizedError
from backend.app.db.session import atomic
from backend.app.models.companion_enums import (
    RiderStatus, RideType, RideStatus,
    RIDE_UNIQUES, RIDER_UNIQUES, ALLOW_APPROVE, KILLABLE,
)
from backend.app.models.ride import Ride, RideRiderRequest
from backend.app.models.ride_rider import RideRider
from backend.app.models.rider import Rider
from backend.app.schemas.membership import MembershipLookup
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("companion")

# Memberships a rider can leave to get its suspended ride back
REACTIVATING = RIDER_UNIQUES - RIDE_UNIQUES


def creator_status(ride_type) -> RiderStatus:
    """Status granted to the main rider of a ride of the given type."""
    if ride_type is None:
        return DEFAULT_CREATOR_STATUS
    return CREATOR_STATUS_BY_RIDE_TYPE.get(RideType(ride_type), DEFAULT_CREATOR_STATUS)


class MembershipStateMachine:
    """
    State transitions of RideRider rows.

    Preconditions are checked before anything is written: a rejected
    transition leaves the rows untouched.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # Ordering

    @staticmethod
    def compare(a: RideRider, b: RideRider) -> int:
        return a.compare_to(b)

    @classmethod
    def sort_ride_riders(cls, ride_riders: Iterable[RideRider]) -> list[RideRider]:
        """Main rider first, then current members, applicants, denied..."""
        return sorted(ride_riders, key=cmp_to_key(cls.compare))

    @classmethod
    def main_rider(cls, ride_riders: Iterable[RideRider]) -> Optional[RideRider]:
        candidates = [rr for rr in ride_riders if rr.status in RIDE_UNIQUES]
        if not candidates:
            return None
        return cls.sort_ride_riders(candidates)[0]

    # Transitions

    async def upgrade(self, ride_rider: RideRider, ride: Optional[Ride]) -> RideRider:
        """
        Make `ride_rider` the main rider of `ride`.

        Only the status column of the row is written; other pending changes
        of the session stay pending. No-op when the ride is missing or has
        no status.
        """
        if ride is None or ride.status is None:
            return ride_rider

        await self.db.execute(
            update(RideRider)
            .where(RideRider.id == ride_rider.id)
            .values(status=creator_status(ride.ride_type))
            .execution_options(synchronize_session="fetch")
        )

        logger.info(
            "Ride rider upgraded",
            extra={"ride_rider_id": ride_rider.id, "ride_id": ride.id, "status": ride_rider.status.value}
        )
        return ride_rider

    def _check_approver(self, rejector: Optional[RideRider], applicant: RideRider, operation: str):
        if rejector is None or rejector.status not in ALLOW_APPROVE:
            logger.warning(
                f"{operation} rejected: missing approve rights",
                extra={"applicant_id": applicant.id, "rejector_id": getattr(rejector, "id", None)}
            )
            raise UnauthorizedError(
                f"Only a member with approve rights can {operation.lower()} an applicant",
                details={"rejector_status": getattr(rejector, "status", None)}
            )
        if rejector.ride_id != applicant.ride_id:
            raise UnauthorizedError(
                "Rejector and applicant are not members of the same ride",
                details={"rejector_ride_id": rejector.ride_id, "applicant_ride_id": applicant.ride_id}
            )

    async def _destroy_requests(self, request_ids: set[int]):
        request_ids = sorted({request_id for request_id in request_ids if request_id is not None})
        if not request_ids:
            return

        # Detach before delete: rides_riders rows reference their requests
        await self.db.execute(
            update(RideRider)
            .where(RideRider.request_id.in_(request_ids))
            .values(request_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.execute(
            update(RideRider)
            .where(RideRider.counter_id.in_(request_ids))
            .values(counter_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.execute(
            delete(RideRiderRequest).where(RideRiderRequest.id.in_(request_ids))
        )

    async def deny(
        self,
        rejector: RideRider,
        applicant: RideRider,
        request: Optional[RideRiderRequest] = None,
        counter: Optional[RideRiderRequest] = None
    ) -> RideRider:
        """
        Deny a pending application.

        Raises:
            InvalidStateError: applicant is not in "applied" status
            UnauthorizedError: rejector lacks approve rights on the ride
        """
        if applicant.status != RiderStatus.APPLIED:
            logger.warning(
                "Deny rejected: applicant is not pending",
                extra={"applicant_id": applicant.id, "status": str(applicant.status)}
            )
            raise InvalidStateError(
                "Only an applicant in 'applied' status can be denied",
                details={"ride_rider_id": applicant.id, "status": applicant.status}
            )
        self._check_approver(rejector, applicant, "Deny")

        request_ids = {applicant.request_id, applicant.counter_id}
        if request is not None:
            request_ids.add(request.id)
        if counter is not None:
            request_ids.add(counter.id)

        async with atomic(self.db):
            applicant.status = RiderStatus.DENIED
            await self.db.flush()
            await self._destroy_requests(request_ids)

            await log_event(
                self.db,
                AuditAction.APPLICANT_DENIED,
                actor_id=rejector.id,
                target_type="ride_rider",
                target_id=applicant.id,
                metadata={"ride_id": applicant.ride_id}
            )

        logger.info("Applicant denied", extra={"ride_rider_id": applicant.id, "ride_id": applicant.ride_id})
        return applicant

    async def killoff(self, rejector: RideRider, applicant: RideRider) -> int:
        """
        Destroy an applied or denied membership row with its pending requests.

        Returns:
            ID of the destroyed row
        """
        if applicant.status not in KILLABLE:
            logger.warning(
                "Killoff rejected: applicant is neither applied nor denied",
                extra={"applicant_id": applicant.id, "status": str(applicant.status)}
            )
            raise InvalidStateError(
                "Only an applied or denied applicant can be removed",
                details={"ride_rider_id": applicant.id, "status": applicant.status}
            )
        self._check_approver(rejector, applicant, "Remove")

        applicant_id, ride_id = applicant.id, applicant.ride_id
        async with atomic(self.db):
            request_ids = {applicant.request_id, applicant.counter_id}
            await self.db.delete(applicant)
            await self.db.flush()
            await self._destroy_requests(request_ids)

            await log_event(
                self.db,
                AuditAction.APPLICANT_REMOVED,
                actor_id=rejector.id,
                target_type="ride_rider",
                target_id=applicant_id,
                metadata={"ride_id": ride_id}
            )

        logger.info("Applicant removed", extra={"ride_rider_id": applicant_id, "ride_id": ride_id})
        return applicant_id

    # Lookups

    async def find_current_ride(
        self,
        ride_rider: RideRider,
        target_ride: Optional[Ride] = None
    ) -> MembershipLookup:
        """
        Current membership of the rider of `ride_rider` and its ride.

        Short-circuits when `ride_rider` itself is current. An empty lookup
        means the rider has no current ride.
        """
        if ride_rider.status in RIDER_UNIQUES:
            return MembershipLookup(ride_rider=ride_rider, ride=target_ride)

        result = await self.db.execute(
            select(RideRider, Ride)
            .join(Ride, Ride.id == RideRider.ride_id)
            .where(
                RideRider.rider_id == ride_rider.rider_id,
                RideRider.status.in_(list(RIDER_UNIQUES))
            )
            .order_by(RideRider.id)
            .limit(1)
        )
        row = result.first()
        if row is None:
            return MembershipLookup()

        return MembershipLookup(ride_rider=row[0], ride=row[1])

    async def find_suspend_ride(self, ride_rider: RideRider, for_reset: bool = False) -> MembershipLookup:
        """
        Suspended membership of the rider of `ride_rider` and its ride.

        With `for_reset` the full ride row is fetched along with its current
        members; otherwise only the columns needed to reactivate it.
        """
        result = await self.db.execute(
            select(RideRider)
            .where(
                RideRider.rider_id == ride_rider.rider_id,
                RideRider.status == RiderStatus.SUSPEND
            )
            .order_by(RideRider.id)
            .limit(1)
        )
        suspended = result.scalar_one_or_none()
        if suspended is None:
            return MembershipLookup()

        if not for_reset:
            result = await self.db.execute(
                select(Ride)
                .options(load_only(Ride.id, Ride.status, Ride.ride_type, Ride.seat_count))
                .where(Ride.id == suspended.ride_id)
            )
            return MembershipLookup(ride_rider=suspended, ride=result.scalar_one_or_none())

        ride = await self.db.get(Ride, suspended.ride_id, populate_existing=True)
        result = await self.db.execute(
            select(RideRider)
            .where(
                RideRider.ride_id == suspended.ride_id,
                RideRider.status.in_(list(RIDER_UNIQUES))
            )
        )
        co_riders = self.sort_ride_riders(result.scalars().all())
        return MembershipLookup(ride_rider=suspended, ride=ride, co_riders=co_riders)

    async def active_status(self, ride: Ride) -> RideStatus:
        """Full when co-riders take every seat, open otherwise."""
        result = await self.db.execute(
            select(func.count(RideRider.id)).where(
                RideRider.ride_id == ride.id,
                RideRider.status.in_(list(RIDER_UNIQUES - RIDE_UNIQUES))
            )
        )
        co_rider_count = result.scalar_one()
        if co_rider_count >= ride.seat_count:
            return RideStatus.FULL
        return RideStatus.OPEN

    async def update_usage(self, ride: Ride, members: Iterable[RideRider]):
        """
        Seats and luggage used by the riders of `members`.

        Capacity only grows to fit the usage.
        """
        rider_ids = [rr.rider_id for rr in members]
        result = await self.db.execute(
            select(Rider.seat_count, Rider.luggage_count).where(Rider.id.in_(rider_ids))
        )
        rows = result.all()
        ride.used_seat_count = sum(seats for seats, _ in rows)
        ride.used_luggage_count = sum(luggages for _, luggages in rows)
        ride.seat_count = max(ride.seat_count, ride.used_seat_count)
        ride.luggage_count = max(ride.luggage_count, ride.used_luggage_count)
        await self.db.flush()

    async def reactivate_suspended_ride(self, ride_rider: RideRider, reset: bool = True) -> Optional[Ride]:
        """
        Mark `ride_rider` as left and give its rider back its suspended ride.

        With `reset` the restored ride's usage and capacity are recomputed
        from its returning owner and current members.

        Returns:
            The reactivated ride, or None when the rider had none suspended

        Raises:
            InvalidStateError: ride_rider is not a current co-rider membership
        """
        if ride_rider is None or ride_rider.status not in REACTIVATING:
            raise InvalidStateError(
                "Only a current co-rider membership can give its rider back a suspended ride",
                details={
                    "ride_rider_id": getattr(ride_rider, "id", None),
                    "status": getattr(ride_rider, "status", None),
                }
            )

        async with atomic(self.db):
            ride_rider.status = RiderStatus.LEFT
            ride_rider.joined_at = None
            await self.db.flush()

            lookup = await self.find_suspend_ride(ride_rider, for_reset=reset)
            if not lookup.found or lookup.ride is None:
                return None

            suspended, ride = lookup.ride_rider, lookup.ride
            suspended.status = creator_status(ride.ride_type)
            suspended.joined_at = datetime.utcnow()
            await self.db.flush()

            if reset:
                await self.update_usage(ride, [suspended] + lookup.co_riders)

            ride.status = await self.active_status(ride)
            await self.db.flush()

            await log_event(
                self.db,
                AuditAction.SUSPENDED_RIDE_REACTIVATED,
                target_type="ride",
                target_id=ride.id,
                metadata={"ride_rider_id": suspended.id, "left_ride_rider_id": ride_rider.id}
            )

        logger.info(
            "Suspended ride reactivated",
            extra={"ride_id": ride.id, "ride_rider_id": suspended.id, "status": ride.status.value}
        )
        return ride
