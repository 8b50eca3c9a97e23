"""
Ordinal reconciliation of a trip's vias.

(trip_id, ordinal) is unique and checked on every write, so vias cannot
simply be renumbered in place. Reconciliation runs in four passes:

1. removed vias are destroyed (cascading into riders and tasks), freeing
   their slots;
2. every via whose target slot is free (or already its own) is written
   directly, freeing the slot it held;
3. vias still blocked get a temporary ordinal above any real one, which
   frees their slot for whoever targets it;
4. vias parked on a temporary ordinal get their real target.

Each pass completes (flush) before the next starts.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.engine_config import TEMP_ORDINAL_BASE
from backend.app.core.exceptions import InvalidInputError, ConsistencyError
from backend.app.db.session import atomic
from backend.app.domain.cascade.passenger_cascade import CascadeConsistencyEngine
from backend.app.models.via import Via
from backend.app.schemas.itinerary import ViaReorderRequest, ReconciledItinerary
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("companion")


class OrdinalReconciler:
    """Moves the vias of a trip to their target ordinals without collisions."""

    def __init__(self, db: AsyncSession, cascade: Optional[CascadeConsistencyEngine] = None):
        self.db = db
        self.cascade = cascade or CascadeConsistencyEngine(db)
        self.writes = 0

    async def _persisted_ordinals(self, trip_id: int) -> dict[int, int]:
        """via id -> ordinal, as stored."""
        result = await self.db.execute(
            select(Via.id, Via.ordinal).where(Via.trip_id == trip_id)
        )
        return {via_id: ordinal for via_id, ordinal in result.all()}

    def _validate(self, request: ViaReorderRequest, persisted: dict[int, int]):
        trip_id = request.trip.id
        for via in request.final_vias + request.removed_vias:
            if via.id is not None and via.id not in persisted:
                raise InvalidInputError(
                    f"Via {via.id} is not part of trip {trip_id}",
                    details={"trip_id": trip_id, "via_id": via.id}
                )

        accounted = {via.id for via in request.final_vias + request.removed_vias if via.id is not None}
        unaccounted = sorted(set(persisted) - accounted)
        if unaccounted:
            raise InvalidInputError(
                "Every via of the trip must be either kept or removed",
                details={"trip_id": trip_id, "via_ids": unaccounted}
            )

    async def _write(self, via: Via, ordinal: int):
        via.ordinal = ordinal
        if via.id is None:
            self.db.add(via)
        await self.db.flush()
        self.writes += 1

    async def _reconcile(self, request: ViaReorderRequest, persisted: dict[int, int]) -> list[int]:
        trip = request.trip

        # Phase 1: delete
        removed_ids = {via.id for via in request.removed_vias}
        if removed_ids:
            await self.cascade.remove_vias(removed_ids)

        # old ordinal -> id of the via holding it
        slots = {
            ordinal: via_id
            for via_id, ordinal in persisted.items()
            if via_id not in removed_ids
        }

        def free_slot(via: Via):
            if via.id is None:
                return
            old = persisted[via.id]
            if slots.get(old) == via.id:
                del slots[old]

        # Phase 2: direct assignment
        delayed: list[tuple[Via, int]] = []
        for index, via in enumerate(request.final_vias):
            if via.trip_id is None:
                via.trip_id = trip.id

            holder = slots.get(index)
            if holder is not None and holder != via.id:
                delayed.append((via, index))
                continue

            if via.id is not None and persisted[via.id] == index:
                continue

            free_slot(via)
            await self._write(via, index)

        # Phase 3: temporary relocation
        conflicted: list[tuple[Via, int]] = []
        for position, (via, target) in enumerate(delayed):
            if target in slots:
                free_slot(via)
                await self._write(via, TEMP_ORDINAL_BASE + position)
                conflicted.append((via, target))
            else:
                free_slot(via)
                await self._write(via, target)

        # Phase 4: final assignment
        for via, target in conflicted:
            await self._write(via, target)

        return [via.id for via, _ in conflicted]

    async def reconcile(self, request: ViaReorderRequest) -> ReconciledItinerary:
        """
        Apply the desired order of `request.final_vias` to the trip.

        After success every via's ordinal equals its index in `final_vias`.

        Raises:
            InvalidInputError: the request does not describe the whole trip
            ConsistencyError: a write failed; nothing was applied
        """
        trip = request.trip
        persisted = await self._persisted_ordinals(trip.id)
        self._validate(request, persisted)

        self.writes = 0
        try:
            async with atomic(self.db):
                conflicted = await self._reconcile(request, persisted)
                if self.writes or request.removed_vias:
                    await log_event(
                        self.db,
                        AuditAction.VIAS_REORDERED,
                        target_type="trip",
                        target_id=trip.id,
                        metadata={
                            "order": [via.id for via in request.final_vias],
                            "removed": [via.id for via in request.removed_vias],
                            "writes": self.writes,
                            "conflicted": conflicted,
                        }
                    )
        except ConsistencyError:
            logger.error("Via reconciliation aborted during removal", extra={"trip_id": trip.id})
            raise
        except SQLAlchemyError as exc:
            logger.error(
                "Via reconciliation aborted",
                extra={"trip_id": trip.id, "error": str(exc)}
            )
            raise ConsistencyError(
                f"Could not reorder the vias of trip {trip.id}",
                details={"trip_id": trip.id}
            ) from exc

        logger.info(
            "Vias reconciled",
            extra={
                "trip_id": trip.id,
                "vias": len(request.final_vias),
                "removed": len(request.removed_vias),
                "writes": self.writes,
                "conflicted": len(conflicted),
            }
        )
        return ReconciledItinerary(
            trip=trip,
            vias=list(request.final_vias),
            writes=self.writes,
            conflicted=conflicted,
        )
