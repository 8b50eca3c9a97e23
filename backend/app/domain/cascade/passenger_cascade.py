"""
Cascade consistency engine.

Passenger (via-traveler) removal is the only trigger into the rider and
task graphs. Callers destroy passengers and vias through this engine so
that no rider, ride or task is left pointing at a deleted row.
"""

import logging
from typing import Iterable, Union

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ConsistencyError
from backend.app.db.session import atomic
from backend.app.domain.rides.membership import MembershipStateMachine
from backend.app.domain.rides.ride_cascade import RideCascade
from backend.app.domain.tasks.task_cascade import TaskCascade
from backend.app.models.rider import Rider, RiderTraveler
from backend.app.models.task import Task, TaskViaTraveler
from backend.app.models.via import Via
from backend.app.models.via_traveler import ViaTraveler
from backend.app.schemas.cascade import CascadeReport, PassengerRemovalRequest
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.rider_users import sync_rider_users

logger = logging.getLogger("companion")


class CascadeConsistencyEngine:
    """
    Explicit cascades for passenger and via removal.

    Every public operation is all-or-nothing: it runs inside `atomic()` and
    a failing step leaves the database as it was.
    """

    def __init__(self, db: AsyncSession, membership: MembershipStateMachine = None):
        self.db = db
        self.membership = membership or MembershipStateMachine(db)
        self.rides = RideCascade(db, self.membership)
        self.tasks = TaskCascade(db)

    async def _resolve_riders(self, passenger_ids: list[int]) -> tuple[list[int], list[int]]:
        """Split the riders carrying the passengers into (empty, non-empty)."""
        result = await self.db.execute(
            select(RiderTraveler.rider_id)
            .where(RiderTraveler.via_traveler_id.in_(passenger_ids))
            .distinct()
        )
        affected = set(result.scalars().all())
        if not affected:
            return [], []

        result = await self.db.execute(
            select(RiderTraveler.rider_id)
            .where(
                RiderTraveler.rider_id.in_(sorted(affected)),
                RiderTraveler.via_traveler_id.not_in(passenger_ids)
            )
            .distinct()
        )
        non_empty = set(result.scalars().all())
        return sorted(affected - non_empty), sorted(non_empty)

    async def _cascade_passengers(self, passenger_ids: list[int]) -> CascadeReport:
        empty, non_empty = await self._resolve_riders(passenger_ids)

        destroyed_rides, released = await self.rides.destroy_riders(empty)

        # Non-empty riders only lose the links to the deleted passengers
        if non_empty:
            await self.db.execute(
                delete(RiderTraveler).where(
                    RiderTraveler.rider_id.in_(non_empty),
                    RiderTraveler.via_traveler_id.in_(passenger_ids)
                )
            )
            await self.db.flush()
            await sync_rider_users(self.db, non_empty)

        destroyed_tasks, removed_members = await self.tasks.cascade(passenger_ids)

        result = await self.db.execute(
            select(TaskViaTraveler.id).where(TaskViaTraveler.via_traveler_id.in_(passenger_ids))
        )
        leftover_members = result.scalars().all()
        if leftover_members:
            await self.db.execute(delete(TaskViaTraveler).where(TaskViaTraveler.id.in_(leftover_members)))

        await self.db.execute(delete(ViaTraveler).where(ViaTraveler.id.in_(passenger_ids)))
        await self.db.flush()

        return CascadeReport(
            destroyed_passengers=passenger_ids,
            destroyed_riders=empty,
            destroyed_rides=destroyed_rides,
            destroyed_tasks=destroyed_tasks,
            removed_members=sorted(set(removed_members) | set(leftover_members)),
            released_addresses=released,
        )

    async def destroy_passengers(
        self,
        passengers: Union[PassengerRemovalRequest, Iterable[int]]
    ) -> CascadeReport:
        """
        Destroy passengers with everything that depended on them.

        Riders left without traveler links are destroyed (their rides
        cascade), task memberships of the passengers are removed and the
        tasks adjusted or destroyed.

        Raises:
            ConsistencyError: a step failed; nothing was applied
        """
        if not isinstance(passengers, PassengerRemovalRequest):
            passengers = PassengerRemovalRequest(passenger_ids=list(passengers))
        passenger_ids = passengers.unique_ids
        if not passenger_ids:
            return CascadeReport()

        try:
            async with atomic(self.db):
                report = await self._cascade_passengers(passenger_ids)
                await log_event(
                    self.db,
                    AuditAction.PASSENGERS_CASCADED,
                    target_type="via_traveler",
                    metadata=report.model_dump()
                )
        except SQLAlchemyError as exc:
            logger.error(
                "Passenger cascade aborted",
                extra={"passenger_ids": passenger_ids, "error": str(exc)}
            )
            raise ConsistencyError(
                "Passenger cascade could not complete",
                details={"passenger_ids": passenger_ids}
            ) from exc

        logger.info(
            "Passengers destroyed",
            extra={
                "passengers": len(passenger_ids),
                "riders": len(report.destroyed_riders),
                "rides": len(report.destroyed_rides),
                "tasks": len(report.destroyed_tasks),
            }
        )
        return report

    async def remove_vias(self, via_ids: Iterable[int]) -> CascadeReport:
        """
        Destroy vias with their riders and passengers.

        Tasks attached to the vias are kept but detached (provisional).

        Raises:
            ConsistencyError: a step failed; nothing was applied
        """
        via_ids = sorted(set(via_ids))
        if not via_ids:
            return CascadeReport()

        try:
            async with atomic(self.db):
                result = await self.db.execute(select(Rider.id).where(Rider.via_id.in_(via_ids)))
                rider_ids = result.scalars().all()
                destroyed_rides, released = await self.rides.destroy_riders(rider_ids)

                result = await self.db.execute(select(ViaTraveler.id).where(ViaTraveler.via_id.in_(via_ids)))
                passenger_ids = sorted(result.scalars().all())
                report = CascadeReport(
                    destroyed_riders=sorted(rider_ids),
                    destroyed_rides=destroyed_rides,
                    released_addresses=released,
                )
                if passenger_ids:
                    report.merge(await self._cascade_passengers(passenger_ids))

                await self.db.execute(delete(TaskViaTraveler).where(TaskViaTraveler.via_id.in_(via_ids)))
                await self.db.execute(
                    update(Task)
                    .where(Task.via_id.in_(via_ids))
                    .values(via_id=None)
                    .execution_options(synchronize_session="fetch")
                )
                await self.db.execute(delete(Via).where(Via.id.in_(via_ids)))
                await self.db.flush()

                report.destroyed_vias = via_ids
                await log_event(
                    self.db,
                    AuditAction.VIAS_REMOVED,
                    target_type="via",
                    metadata=report.model_dump()
                )
        except SQLAlchemyError as exc:
            logger.error("Via removal aborted", extra={"via_ids": via_ids, "error": str(exc)})
            raise ConsistencyError("Via removal could not complete", details={"via_ids": via_ids}) from exc

        logger.info(
            "Vias removed",
            extra={"vias": len(via_ids), "riders": len(report.destroyed_riders), "tasks": len(report.destroyed_tasks)}
        )
        return report
