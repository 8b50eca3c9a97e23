"""
Tests for the ride membership state machine.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from backend.app.core.exceptions import InvalidStateError, UnauthorizedError
from backend.app.domain.rides.membership import MembershipStateMachine, creator_status
from backend.app.models.companion_enums import RiderStatus, RideStatus, RideType
from backend.app.models.ride import Ride, RideRiderRequest
from backend.app.models.ride_rider import RideRider
from backend.app.models.rider import Rider
from backend.app.models.trip import Trip
from backend.app.models.via import Via

T0 = datetime(2024, 5, 1, 8, 0, 0)


@pytest.fixture
async def via(db_session):
    trip = Trip(label="CDG-JFK")
    db_session.add(trip)
    await db_session.flush()
    via = Via(trip_id=trip.id, ordinal=0)
    db_session.add(via)
    await db_session.flush()
    return via


async def make_rider(db, via, seat_count=1, luggage_count=1):
    rider = Rider(via_id=via.id, seat_count=seat_count, luggage_count=luggage_count)
    db.add(rider)
    await db.flush()
    return rider


async def make_ride(db, ride_type=RideType.SHARE_CAB, status=RideStatus.OPEN, seat_count=3):
    ride = Ride(ride_type=ride_type, status=status, seat_count=seat_count)
    db.add(ride)
    await db.flush()
    return ride


async def join(db, ride, rider, status, joined_at=None):
    ride_rider = RideRider(ride_id=ride.id, rider_id=rider.id, status=status, joined_at=joined_at)
    db.add(ride_rider)
    await db.flush()
    return ride_rider


async def make_application(db, ride, rider, with_counter=False):
    """Applicant row with its request (and optionally a counter-request)."""
    request = RideRiderRequest(ride_id=ride.id, rider_id=rider.id, message="Room for one more?")
    db.add(request)
    counter = None
    if with_counter:
        counter = RideRiderRequest(ride_id=ride.id, rider_id=rider.id, message="Only if you share the toll")
        db.add(counter)
    await db.flush()

    applicant = RideRider(
        ride_id=ride.id,
        rider_id=rider.id,
        status=RiderStatus.APPLIED,
        request_id=request.id,
        counter_id=counter.id if counter else None,
    )
    db.add(applicant)
    await db.flush()
    return applicant, request, counter


async def request_ids(db):
    result = await db.execute(select(RideRiderRequest.id))
    return set(result.scalars().all())


# Ordering

def test_compare_orders_by_status_then_join_time():
    owner = RideRider(id=1, status=RiderStatus.OWNER, joined_at=T0 + timedelta(hours=5))
    early_joiner = RideRider(id=2, status=RiderStatus.JOINED, joined_at=T0)
    late_joiner = RideRider(id=3, status=RiderStatus.JOINED, joined_at=T0 + timedelta(hours=1))
    applicant = RideRider(id=4, status=RiderStatus.APPLIED, joined_at=T0 - timedelta(days=1))
    denied = RideRider(id=5, status=RiderStatus.DENIED, joined_at=T0 - timedelta(days=2))

    ordered = MembershipStateMachine.sort_ride_riders([denied, late_joiner, applicant, owner, early_joiner])

    assert [rr.id for rr in ordered] == [1, 2, 3, 4, 5]
    assert owner.compare_to(early_joiner) < 0
    assert late_joiner.compare_to(early_joiner) > 0
    assert early_joiner.compare_to(RideRider(status=RiderStatus.JOINED, joined_at=T0)) == 0


def test_missing_join_time_sorts_last_within_status():
    dated = RideRider(id=1, status=RiderStatus.JOINED, joined_at=T0)
    undated = RideRider(id=2, status=RiderStatus.JOINED, joined_at=None)

    assert MembershipStateMachine.sort_ride_riders([undated, dated]) == [dated, undated]


def test_main_rider_is_the_ride_unique_member():
    driver = RideRider(id=1, status=RiderStatus.DRIVER, joined_at=T0 + timedelta(hours=2))
    joined = RideRider(id=2, status=RiderStatus.JOINED, joined_at=T0)

    assert MembershipStateMachine.main_rider([joined, driver]) is driver
    assert MembershipStateMachine.main_rider([joined]) is None


def test_creator_status_per_ride_type():
    assert creator_status(RideType.OWN_CAR) == RiderStatus.DRIVER
    assert creator_status(RideType.RENTAL_CAR) == RiderStatus.DRIVER
    assert creator_status(RideType.CAB_RIDE) == RiderStatus.DRIVER
    assert creator_status(RideType.RELATIVE_CAR) == RiderStatus.PROVIDER
    assert creator_status(RideType.SHARE_CAB) == RiderStatus.OWNER
    assert creator_status(None) == RiderStatus.OWNER


# Upgrade

@pytest.mark.asyncio
async def test_upgrade_sets_creator_status(db_session, via):
    ride = await make_ride(db_session, ride_type=RideType.RELATIVE_CAR)
    rider = await make_rider(db_session, via)
    ride_rider = await join(db_session, ride, rider, RiderStatus.JOINED, T0)

    await MembershipStateMachine(db_session).upgrade(ride_rider, ride)

    result = await db_session.execute(select(RideRider.status).where(RideRider.id == ride_rider.id))
    assert result.scalar_one() == RiderStatus.PROVIDER


@pytest.mark.asyncio
async def test_upgrade_without_ride_status_is_a_noop(db_session, via):
    ride = await make_ride(db_session, ride_type=RideType.OWN_CAR)
    rider = await make_rider(db_session, via)
    ride_rider = await join(db_session, ride, rider, RiderStatus.JOINED, T0)
    ride.status = None
    machine = MembershipStateMachine(db_session)

    await machine.upgrade(ride_rider, ride)
    await machine.upgrade(ride_rider, None)

    assert ride_rider.status == RiderStatus.JOINED


@pytest.mark.asyncio
async def test_upgrade_writes_only_the_status(db_session, via):
    ride = await make_ride(db_session, ride_type=RideType.RELATIVE_CAR)
    ride_rider = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.JOINED, T0)
    ride.seat_count = 9

    await MembershipStateMachine(db_session).upgrade(ride_rider, ride)

    assert ride_rider.status == RiderStatus.PROVIDER
    result = await db_session.execute(select(Ride.seat_count).where(Ride.id == ride.id))
    assert result.scalar_one() == 3
    assert ride in db_session.dirty


# Deny

@pytest.mark.asyncio
async def test_deny_applicant_destroys_requests(db_session, via):
    ride = await make_ride(db_session)
    owner = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.OWNER, T0)
    applicant, request, counter = await make_application(
        db_session, ride, await make_rider(db_session, via), with_counter=True
    )
    await db_session.commit()

    denied = await MembershipStateMachine(db_session).deny(owner, applicant, request, counter)

    assert denied is applicant
    assert applicant.status == RiderStatus.DENIED
    assert applicant.request_id is None
    assert applicant.counter_id is None
    assert await request_ids(db_session) == set()


@pytest.mark.asyncio
async def test_deny_requires_applied_status(db_session, via):
    ride = await make_ride(db_session)
    owner = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.OWNER, T0)
    applicant, request, _ = await make_application(db_session, ride, await make_rider(db_session, via))
    applicant.status = RiderStatus.JOINED
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await MembershipStateMachine(db_session).deny(owner, applicant, request)

    assert applicant.status == RiderStatus.JOINED
    assert applicant.request_id == request.id
    assert await request_ids(db_session) == {request.id}


@pytest.mark.asyncio
async def test_deny_requires_approve_rights(db_session, via):
    ride = await make_ride(db_session)
    co_rider = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.JOINED, T0)
    applicant, request, _ = await make_application(db_session, ride, await make_rider(db_session, via))
    await db_session.commit()

    with pytest.raises(UnauthorizedError):
        await MembershipStateMachine(db_session).deny(co_rider, applicant, request)

    assert applicant.status == RiderStatus.APPLIED
    assert await request_ids(db_session) == {request.id}


@pytest.mark.asyncio
async def test_deny_from_another_ride_is_unauthorized(db_session, via):
    ride = await make_ride(db_session)
    other_ride = await make_ride(db_session)
    other_owner = await join(db_session, other_ride, await make_rider(db_session, via), RiderStatus.OWNER, T0)
    applicant, request, _ = await make_application(db_session, ride, await make_rider(db_session, via))

    with pytest.raises(UnauthorizedError):
        await MembershipStateMachine(db_session).deny(other_owner, applicant, request)

    assert applicant.status == RiderStatus.APPLIED


# Killoff

@pytest.mark.asyncio
async def test_killoff_destroys_denied_applicant(db_session, via):
    ride = await make_ride(db_session)
    owner = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.OWNER, T0)
    applicant, request, _ = await make_application(db_session, ride, await make_rider(db_session, via))
    applicant.status = RiderStatus.DENIED
    await db_session.commit()

    removed_id = await MembershipStateMachine(db_session).killoff(owner, applicant)

    assert await db_session.get(RideRider, removed_id) is None
    assert await request_ids(db_session) == set()


@pytest.mark.asyncio
async def test_killoff_rejects_current_member(db_session, via):
    ride = await make_ride(db_session)
    owner = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.OWNER, T0)
    co_rider = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.JOINED, T0)

    with pytest.raises(InvalidStateError):
        await MembershipStateMachine(db_session).killoff(owner, co_rider)

    assert await db_session.get(RideRider, co_rider.id) is co_rider


@pytest.mark.asyncio
async def test_killoff_requires_approve_rights(db_session, via):
    ride = await make_ride(db_session)
    co_rider = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.JOINED, T0)
    applicant, request, _ = await make_application(db_session, ride, await make_rider(db_session, via))
    await db_session.commit()

    with pytest.raises(UnauthorizedError):
        await MembershipStateMachine(db_session).killoff(co_rider, applicant)

    assert await db_session.get(RideRider, applicant.id) is applicant
    assert applicant.status == RiderStatus.APPLIED
    assert await request_ids(db_session) == {request.id}


# Lookups

@pytest.mark.asyncio
async def test_find_current_ride_short_circuits_when_current(db_session, via):
    ride = await make_ride(db_session)
    ride_rider = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.JOINED, T0)

    lookup = await MembershipStateMachine(db_session).find_current_ride(ride_rider, ride)

    assert lookup.ride_rider is ride_rider
    assert lookup.ride is ride


@pytest.mark.asyncio
async def test_find_current_ride_looks_up_other_membership(db_session, via):
    rider = await make_rider(db_session, via)
    current_ride = await make_ride(db_session)
    target_ride = await make_ride(db_session)
    current = await join(db_session, current_ride, rider, RiderStatus.JOINED, T0)
    applicant = await join(db_session, target_ride, rider, RiderStatus.APPLIED)

    lookup = await MembershipStateMachine(db_session).find_current_ride(applicant, target_ride)

    assert lookup.found
    assert lookup.ride_rider.id == current.id
    assert lookup.ride.id == current_ride.id


@pytest.mark.asyncio
async def test_no_current_ride_is_not_an_error(db_session, via):
    ride = await make_ride(db_session)
    applicant = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.APPLIED)

    lookup = await MembershipStateMachine(db_session).find_current_ride(applicant)

    assert not lookup.found
    assert lookup.ride is None


@pytest.mark.asyncio
async def test_find_suspend_ride_for_reset_includes_members(db_session, via):
    rider = await make_rider(db_session, via)
    own_ride = await make_ride(db_session, status=RideStatus.DISABLED)
    suspended = await join(db_session, own_ride, rider, RiderStatus.SUSPEND, T0)
    joined_ride = await make_ride(db_session)
    current = await join(db_session, joined_ride, rider, RiderStatus.JOINED, T0)
    machine = MembershipStateMachine(db_session)

    lean = await machine.find_suspend_ride(current)
    full = await machine.find_suspend_ride(current, for_reset=True)

    assert lean.ride_rider.id == suspended.id
    assert lean.ride.id == own_ride.id
    assert lean.co_riders == []
    assert full.ride.id == own_ride.id
    assert full.co_riders == []


# Reactivation

@pytest.mark.asyncio
async def test_reactivate_suspended_ride(db_session, via):
    rider = await make_rider(db_session, via)
    own_ride = await make_ride(db_session, ride_type=RideType.SHARE_CAB, status=RideStatus.DISABLED)
    suspended = await join(db_session, own_ride, rider, RiderStatus.SUSPEND, T0)
    joined_ride = await make_ride(db_session)
    await join(db_session, joined_ride, await make_rider(db_session, via), RiderStatus.OWNER, T0)
    current = await join(db_session, joined_ride, rider, RiderStatus.JOINED, T0 + timedelta(hours=1))
    await db_session.commit()

    ride = await MembershipStateMachine(db_session).reactivate_suspended_ride(current)

    assert ride.id == own_ride.id
    assert ride.status == RideStatus.OPEN
    assert current.status == RiderStatus.LEFT
    assert current.joined_at is None
    assert suspended.status == RiderStatus.OWNER
    assert suspended.joined_at is not None


@pytest.mark.asyncio
async def test_reactivated_join_time_is_naive_utc(db_session, via):
    rider = await make_rider(db_session, via)
    own_ride = await make_ride(db_session, ride_type=RideType.SHARE_CAB, status=RideStatus.DISABLED)
    suspended = await join(db_session, own_ride, rider, RiderStatus.SUSPEND, T0)
    joined_ride = await make_ride(db_session)
    await join(db_session, joined_ride, await make_rider(db_session, via), RiderStatus.OWNER, T0)
    current = await join(db_session, joined_ride, rider, RiderStatus.JOINED, T0 + timedelta(hours=1))
    await db_session.commit()

    await MembershipStateMachine(db_session).reactivate_suspended_ride(current)
    await db_session.commit()

    stored = await db_session.scalar(select(RideRider.joined_at).where(RideRider.id == suspended.id))
    assert stored.tzinfo is None
    assert stored > T0


@pytest.mark.asyncio
async def test_reactivate_with_reset_recomputes_usage(db_session, via):
    rider = await make_rider(db_session, via, seat_count=3, luggage_count=4)
    own_ride = await make_ride(db_session, status=RideStatus.DISABLED, seat_count=1)
    await join(db_session, own_ride, rider, RiderStatus.SUSPEND, T0)
    joined_ride = await make_ride(db_session)
    current = await join(db_session, joined_ride, rider, RiderStatus.JOINED, T0)
    await db_session.commit()

    ride = await MembershipStateMachine(db_session).reactivate_suspended_ride(current, reset=True)

    assert (ride.used_seat_count, ride.used_luggage_count) == (3, 4)
    assert (ride.seat_count, ride.luggage_count) == (3, 4)
    assert ride.status == RideStatus.OPEN


@pytest.mark.asyncio
async def test_reactivate_without_reset_keeps_usage(db_session, via):
    rider = await make_rider(db_session, via, seat_count=3, luggage_count=4)
    own_ride = await make_ride(db_session, status=RideStatus.DISABLED, seat_count=1)
    suspended = await join(db_session, own_ride, rider, RiderStatus.SUSPEND, T0)
    joined_ride = await make_ride(db_session)
    current = await join(db_session, joined_ride, rider, RiderStatus.JOINED, T0)
    await db_session.commit()

    ride = await MembershipStateMachine(db_session).reactivate_suspended_ride(current, reset=False)

    assert ride.id == own_ride.id
    assert suspended.status == RiderStatus.OWNER
    assert (own_ride.used_seat_count, own_ride.seat_count) == (0, 1)


@pytest.mark.asyncio
async def test_reactivate_rejects_non_current_row(db_session, via):
    rider = await make_rider(db_session, via)
    suspended = await join(db_session, await make_ride(db_session, status=RideStatus.DISABLED), rider, RiderStatus.SUSPEND, T0)
    current = await join(db_session, await make_ride(db_session), rider, RiderStatus.JOINED, T0)
    applied = await join(db_session, await make_ride(db_session), rider, RiderStatus.APPLIED)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await MembershipStateMachine(db_session).reactivate_suspended_ride(applied)

    result = await db_session.execute(
        select(RideRider.id, RideRider.status).where(RideRider.rider_id == rider.id)
    )
    assert dict(result.all()) == {
        suspended.id: RiderStatus.SUSPEND,
        current.id: RiderStatus.JOINED,
        applied.id: RiderStatus.APPLIED,
    }


@pytest.mark.asyncio
async def test_reactivate_without_suspended_ride(db_session, via):
    ride = await make_ride(db_session)
    current = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.JOINED, T0)

    assert await MembershipStateMachine(db_session).reactivate_suspended_ride(current) is None
    assert current.status == RiderStatus.LEFT


@pytest.mark.asyncio
async def test_reactivate_rejects_main_rider(db_session, via):
    ride = await make_ride(db_session)
    owner = await join(db_session, ride, await make_rider(db_session, via), RiderStatus.OWNER, T0)

    with pytest.raises(InvalidStateError):
        await MembershipStateMachine(db_session).reactivate_suspended_ride(owner)

    assert owner.status == RiderStatus.OWNER
