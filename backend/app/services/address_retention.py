"""
Release of addresses no longer referenced.

Addresses are shared rows; one is deleted only once no user, traveler,
rider or task points at it anymore.
"""

from typing import Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, or_

from backend.app.models.address import Address, UserAddress, TravelerAddress
from backend.app.models.rider import Rider
from backend.app.models.task import Task


async def _referenced_ids(db: AsyncSession, address_ids: list[int]) -> set[int]:
    referenced: set[int] = set()

    result = await db.execute(
        select(UserAddress.address_id).where(UserAddress.address_id.in_(address_ids))
    )
    referenced.update(result.scalars().all())

    result = await db.execute(
        select(TravelerAddress.address_id).where(TravelerAddress.address_id.in_(address_ids))
    )
    referenced.update(result.scalars().all())

    result = await db.execute(
        select(Rider.address_id).where(Rider.address_id.in_(address_ids))
    )
    referenced.update(result.scalars().all())

    result = await db.execute(
        select(Task.dep_address_id, Task.arr_address_id).where(
            or_(Task.dep_address_id.in_(address_ids), Task.arr_address_id.in_(address_ids))
        )
    )
    for dep_id, arr_id in result.all():
        referenced.update({dep_id, arr_id})

    return referenced


async def release_addresses(db: AsyncSession, address_ids: Iterable[int]) -> list[int]:
    """
    Delete the addresses among `address_ids` that nothing references.

    Must run after the rows that held the addresses were deleted and flushed.

    Returns:
        IDs of the deleted addresses
    """
    address_ids = sorted({address_id for address_id in address_ids if address_id is not None})
    if not address_ids:
        return []

    referenced = await _referenced_ids(db, address_ids)
    orphans = [address_id for address_id in address_ids if address_id not in referenced]

    if orphans:
        await db.execute(delete(Address).where(Address.id.in_(orphans)))
        await db.flush()

    return orphans
