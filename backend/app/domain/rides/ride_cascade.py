"""
Ride-side cascade.

Runs when riders are destroyed: each ride they belonged to is dissolved,
handed over to a new owner or simply shrunk, depending on which member
left. Rider rows and their links are destroyed afterwards.
"""

import logging
from typing import Iterable

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.companion_enums import RIDE_UNIQUES, RIDER_UNIQUES, KEY_RIDERS, RIDE_SEARCHABLES
from backend.app.models.ride import Ride, RideRiderRequest
from backend.app.models.ride_rider import RideRider
from backend.app.models.rider import Rider, RiderTraveler, RiderUser
from backend.app.domain.rides.membership import MembershipStateMachine
from backend.app.services.address_retention import release_addresses
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("companion")


def _earliest_joiner(ride_riders: list[RideRider]) -> RideRider:
    dated = [rr for rr in ride_riders if rr.joined_at is not None]
    if dated:
        return min(dated, key=lambda rr: (rr.joined_at, rr.id))
    return min(ride_riders, key=lambda rr: rr.id)


class RideCascade:
    """Keeps rides consistent when some of their riders disappear."""

    def __init__(self, db: AsyncSession, membership: MembershipStateMachine = None):
        self.db = db
        self.membership = membership or MembershipStateMachine(db)

    async def _release(self, ride_rider: RideRider):
        """Member leaves a dissolved ride and gets its suspended ride back."""
        await self.membership.reactivate_suspended_ride(ride_rider)

    async def _destroy_ride(self, ride: Ride):
        await self.db.execute(
            update(RideRider)
            .where(RideRider.ride_id == ride.id)
            .values(request_id=None, counter_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.execute(delete(RideRiderRequest).where(RideRiderRequest.ride_id == ride.id))
        await self.db.execute(delete(RideRider).where(RideRider.ride_id == ride.id))
        await self.db.delete(ride)
        await self.db.flush()

        await log_event(self.db, AuditAction.RIDE_DESTROYED, target_type="ride", target_id=ride.id)

    async def _remove_memberships(self, removed: list[RideRider]):
        if not removed:
            return
        request_ids = sorted({
            request_id
            for rr in removed
            for request_id in (rr.request_id, rr.counter_id)
            if request_id is not None
        })
        for rr in removed:
            await self.db.delete(rr)
        await self.db.flush()

        if request_ids:
            await self.db.execute(delete(RideRiderRequest).where(RideRiderRequest.id.in_(request_ids)))

    async def refresh_usage(self, ride: Ride, members: list[RideRider]):
        """
        Recompute what the current members use and the open/full status.

        Capacity only grows to fit the usage; closed or disabled rides keep
        their status.
        """
        await self.membership.update_usage(ride, members)

        if ride.status in RIDE_SEARCHABLES:
            ride.status = await self.membership.active_status(ride)
        await self.db.flush()

    async def cascade(self, rider_ids: Iterable[int]) -> list[int]:
        """
        Adjust every ride the given (about to be destroyed) riders belong to.

        Returns:
            IDs of the destroyed rides
        """
        deleted = set(rider_ids)
        if not deleted:
            return []

        result = await self.db.execute(
            select(RideRider.ride_id).where(RideRider.rider_id.in_(sorted(deleted))).distinct()
        )
        ride_ids = sorted(result.scalars().all())
        if not ride_ids:
            return []

        result = await self.db.execute(select(Ride).where(Ride.id.in_(ride_ids)).order_by(Ride.id))
        rides = result.scalars().all()

        result = await self.db.execute(
            select(RideRider).where(RideRider.ride_id.in_(ride_ids)).order_by(RideRider.id)
        )
        links_by_ride: dict[int, list[RideRider]] = {ride_id: [] for ride_id in ride_ids}
        for rr in result.scalars().all():
            links_by_ride[rr.ride_id].append(rr)

        destroyed: list[int] = []
        for ride in rides:
            links = links_by_ride[ride.id]
            removed = [rr for rr in links if rr.rider_id in deleted]
            remaining = [rr for rr in links if rr.rider_id not in deleted and rr.status in RIDER_UNIQUES]

            if not remaining:
                await self._destroy_ride(ride)
                destroyed.append(ride.id)
                continue

            if any(rr.status in KEY_RIDERS for rr in removed):
                # Ride cannot exist without its driver/provider
                for rr in remaining:
                    await self._release(rr)
                await self._destroy_ride(ride)
                destroyed.append(ride.id)
                continue

            if any(rr.status in RIDE_UNIQUES for rr in removed):
                if len(remaining) >= 2:
                    await self._remove_memberships(removed)
                    new_owner = _earliest_joiner(remaining)
                    await self.membership.upgrade(new_owner, ride)
                    await log_event(
                        self.db,
                        AuditAction.RIDE_RIDER_UPGRADED,
                        target_type="ride",
                        target_id=ride.id,
                        metadata={"ride_rider_id": new_owner.id}
                    )
                    await self.refresh_usage(ride, remaining)
                else:
                    await self._release(remaining[0])
                    await self._destroy_ride(ride)
                    destroyed.append(ride.id)
                continue

            await self._remove_memberships(removed)
            await self.refresh_usage(ride, remaining)

        logger.info(
            "Ride cascade complete",
            extra={"riders": len(deleted), "rides": len(rides), "destroyed_rides": len(destroyed)}
        )
        return destroyed

    async def destroy_riders(self, rider_ids: Iterable[int]) -> tuple[list[int], list[int]]:
        """
        Ride-cascade then delete riders with their links and exclusive addresses.

        Returns:
            (destroyed ride IDs, released address IDs)
        """
        rider_ids = sorted(set(rider_ids))
        if not rider_ids:
            return [], []

        destroyed_rides = await self.cascade(rider_ids)

        result = await self.db.execute(select(Rider.address_id).where(Rider.id.in_(rider_ids)))
        address_ids = [address_id for address_id in result.scalars().all() if address_id is not None]

        # Requests filed by these riders on rides that survived
        result = await self.db.execute(
            select(RideRiderRequest.id).where(RideRiderRequest.rider_id.in_(rider_ids))
        )
        request_ids = result.scalars().all()
        if request_ids:
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
            await self.db.execute(delete(RideRiderRequest).where(RideRiderRequest.id.in_(request_ids)))

        await self.db.execute(delete(RideRider).where(RideRider.rider_id.in_(rider_ids)))
        await self.db.execute(delete(RiderUser).where(RiderUser.rider_id.in_(rider_ids)))
        await self.db.execute(delete(RiderTraveler).where(RiderTraveler.rider_id.in_(rider_ids)))
        await self.db.execute(delete(Rider).where(Rider.id.in_(rider_ids)))
        await self.db.flush()

        released = await release_addresses(self.db, address_ids)
        return destroyed_rides, released
