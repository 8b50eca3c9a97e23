"""
Derivation of rider-user links.

A rider's users are exactly the users managing one of its travelers; the
links are recomputed here and never edited by hand.
"""

from typing import Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from backend.app.models.rider import RiderTraveler, RiderUser
from backend.app.models.traveler import UserTraveler


async def sync_rider_users(db: AsyncSession, rider_ids: Iterable[int]) -> dict[int, set[int]]:
    """
    Bring the RiderUser rows of the given riders in line with their traveler links.

    Args:
        db: Database session
        rider_ids: Riders to resynchronize

    Returns:
        Mapping rider id -> user ids linked after the sync
    """
    rider_ids = sorted(set(rider_ids))
    if not rider_ids:
        return {}

    expected: dict[int, set[int]] = {rider_id: set() for rider_id in rider_ids}
    result = await db.execute(
        select(RiderTraveler.rider_id, UserTraveler.user_id)
        .join(UserTraveler, UserTraveler.traveler_id == RiderTraveler.traveler_id)
        .where(RiderTraveler.rider_id.in_(rider_ids))
    )
    for rider_id, user_id in result.all():
        expected[rider_id].add(user_id)

    result = await db.execute(
        select(RiderUser).where(RiderUser.rider_id.in_(rider_ids))
    )
    existing = result.scalars().all()

    stale = [link.id for link in existing if link.user_id not in expected[link.rider_id]]
    if stale:
        await db.execute(delete(RiderUser).where(RiderUser.id.in_(stale)))

    present = {(link.rider_id, link.user_id) for link in existing}
    for rider_id in rider_ids:
        for user_id in sorted(expected[rider_id]):
            if (rider_id, user_id) not in present:
                db.add(RiderUser(rider_id=rider_id, user_id=user_id))

    await db.flush()
    return expected
