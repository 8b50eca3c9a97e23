"""
Tests for itinerary reordering.

Covers the ordinal permutation invariant, idempotence, conflict breaking
through temporary ordinals, removal and insertion of vias, and rollback
when a write fails.
"""

import itertools

import pytest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from backend.app.core.engine_config import TEMP_ORDINAL_BASE
from backend.app.core.exceptions import InvalidInputError, ConsistencyError
from backend.app.domain.itinerary.ordinal_reconciler import OrdinalReconciler
from backend.app.models.audit_log import AuditLog
from backend.app.models.trip import Trip
from backend.app.models.via import Via
from backend.app.schemas.itinerary import ViaReorderRequest
from backend.app.services.audit import AuditAction


async def make_trip(db, count):
    trip = Trip(label="Round the world")
    db.add(trip)
    await db.flush()

    vias = []
    for ordinal in range(count):
        via = Via(trip_id=trip.id, ordinal=ordinal, flight_code=f"AF{100 + ordinal}")
        db.add(via)
        await db.flush()
        vias.append(via)

    await db.commit()
    return trip, vias


async def stored_ordinals(db, trip_id):
    result = await db.execute(select(Via.id, Via.ordinal).where(Via.trip_id == trip_id))
    return dict(result.all())


@pytest.mark.asyncio
async def test_rotation_uses_a_single_temporary_ordinal(db_session):
    """A,B,C -> B,C,A: only B is parked on a temporary ordinal."""
    trip, (a, b, c) = await make_trip(db_session, 3)
    reconciler = OrdinalReconciler(db_session)

    ordinals_written = []
    original_write = reconciler._write

    async def recording_write(via, ordinal):
        ordinals_written.append((via.id, ordinal))
        await original_write(via, ordinal)

    reconciler._write = recording_write

    result = await reconciler.reconcile(ViaReorderRequest(trip=trip, final_vias=[b, c, a]))

    assert await stored_ordinals(db_session, trip.id) == {b.id: 0, c.id: 1, a.id: 2}
    assert result.conflicted == [b.id]
    assert result.writes == 4
    assert [via.id for via in result.vias] == [b.id, c.id, a.id]

    temporary = [ordinal for _, ordinal in ordinals_written if ordinal >= TEMP_ORDINAL_BASE]
    assert temporary == [TEMP_ORDINAL_BASE]


@pytest.mark.asyncio
async def test_simple_swap_of_neighbours(db_session):
    trip, (a, b, c) = await make_trip(db_session, 3)

    result = await OrdinalReconciler(db_session).reconcile(
        ViaReorderRequest(trip=trip, final_vias=[a, c, b])
    )

    assert await stored_ordinals(db_session, trip.id) == {a.id: 0, c.id: 1, b.id: 2}
    assert result.conflicted == [c.id]


@pytest.mark.asyncio
async def test_every_permutation_yields_contiguous_ordinals(db_session):
    trip, vias = await make_trip(db_session, 4)
    reconciler = OrdinalReconciler(db_session)

    for order in itertools.permutations(vias):
        result = await reconciler.reconcile(ViaReorderRequest(trip=trip, final_vias=list(order)))

        stored = await stored_ordinals(db_session, trip.id)
        assert sorted(stored.values()) == [0, 1, 2, 3]
        assert all(stored[via.id] == index for index, via in enumerate(order))
        assert len(result.conflicted) <= len(vias)


@pytest.mark.asyncio
async def test_reconcile_twice_performs_no_second_write(db_session):
    trip, (a, b, c) = await make_trip(db_session, 3)
    reconciler = OrdinalReconciler(db_session)

    first = await reconciler.reconcile(ViaReorderRequest(trip=trip, final_vias=[c, a, b]))
    second = await reconciler.reconcile(ViaReorderRequest(trip=trip, final_vias=[c, a, b]))

    assert first.writes > 0
    assert second.writes == 0
    assert second.conflicted == []
    assert await stored_ordinals(db_session, trip.id) == {c.id: 0, a.id: 1, b.id: 2}

    result = await db_session.execute(
        select(AuditLog).where(AuditLog.action == AuditAction.VIAS_REORDERED)
    )
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_already_ordered_trip_is_untouched(db_session):
    trip, vias = await make_trip(db_session, 3)

    result = await OrdinalReconciler(db_session).reconcile(ViaReorderRequest(trip=trip, final_vias=vias))

    assert result.writes == 0
    assert await stored_ordinals(db_session, trip.id) == {via.id: i for i, via in enumerate(vias)}


@pytest.mark.asyncio
async def test_removed_via_frees_its_slot(db_session):
    trip, (a, b, c) = await make_trip(db_session, 3)
    b_id = b.id

    await OrdinalReconciler(db_session).reconcile(
        ViaReorderRequest(trip=trip, final_vias=[c, a], removed_vias=[b])
    )

    assert await stored_ordinals(db_session, trip.id) == {c.id: 0, a.id: 1}
    assert await db_session.get(Via, b_id) is None


@pytest.mark.asyncio
async def test_new_via_is_inserted_in_front(db_session):
    trip, (a, b) = await make_trip(db_session, 2)
    new_via = Via(flight_code="LH400")

    result = await OrdinalReconciler(db_session).reconcile(
        ViaReorderRequest(trip=trip, final_vias=[new_via, a, b])
    )

    assert new_via.id is not None
    assert new_via.trip_id == trip.id
    assert await stored_ordinals(db_session, trip.id) == {new_via.id: 0, a.id: 1, b.id: 2}
    assert result.conflicted == [new_via.id]


@pytest.mark.asyncio
async def test_new_via_appended(db_session):
    trip, (a, b) = await make_trip(db_session, 2)
    new_via = Via(flight_code="LH401")

    result = await OrdinalReconciler(db_session).reconcile(
        ViaReorderRequest(trip=trip, final_vias=[a, b, new_via])
    )

    assert result.writes == 1
    assert await stored_ordinals(db_session, trip.id) == {a.id: 0, b.id: 1, new_via.id: 2}


@pytest.mark.asyncio
async def test_via_neither_kept_nor_removed_is_rejected(db_session):
    trip, (a, b, c) = await make_trip(db_session, 3)

    with pytest.raises(InvalidInputError) as exc_info:
        await OrdinalReconciler(db_session).reconcile(ViaReorderRequest(trip=trip, final_vias=[b, a]))

    assert exc_info.value.details["via_ids"] == [c.id]
    assert await stored_ordinals(db_session, trip.id) == {a.id: 0, b.id: 1, c.id: 2}


@pytest.mark.asyncio
async def test_via_of_another_trip_is_rejected(db_session):
    trip, (a,) = await make_trip(db_session, 1)
    other_trip, (foreign,) = await make_trip(db_session, 1)

    with pytest.raises(ValidationError):
        ViaReorderRequest(trip=trip, final_vias=[a, foreign])


@pytest.mark.asyncio
async def test_request_rejects_kept_and_removed_via(db_session):
    trip, (a, b) = await make_trip(db_session, 2)

    with pytest.raises(ValidationError):
        ViaReorderRequest(trip=trip, final_vias=[a, b], removed_vias=[b])


@pytest.mark.asyncio
async def test_request_rejects_duplicate_via(db_session):
    trip, (a, b) = await make_trip(db_session, 2)

    with pytest.raises(ValidationError):
        ViaReorderRequest(trip=trip, final_vias=[a, b, a])


@pytest.mark.asyncio
async def test_failed_write_rolls_back_and_raises(db_session):
    trip, (a, b) = await make_trip(db_session, 2)
    a_id, b_id, trip_id = a.id, b.id, trip.id
    reconciler = OrdinalReconciler(db_session)
    original_write = reconciler._write
    calls = []

    async def failing_write(via, ordinal):
        if calls:
            raise IntegrityError("UPDATE vias SET ordinal", {}, Exception("connection lost"))
        calls.append(via.id)
        await original_write(via, ordinal)

    reconciler._write = failing_write

    with pytest.raises(ConsistencyError) as exc_info:
        await reconciler.reconcile(ViaReorderRequest(trip=trip, final_vias=[b, a]))

    assert isinstance(exc_info.value.__cause__, IntegrityError)
    assert exc_info.value.error_code == "ERR_CONSISTENCY_001"
    assert await stored_ordinals(db_session, trip_id) == {a_id: 0, b_id: 1}
