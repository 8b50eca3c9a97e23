"""
Task-side cascade.

Runs when passengers are destroyed: tasks losing their last traveler (or
their last helpee when they have no beneficiary) are destroyed, the others
drop the users no longer represented and re-rank their taskers.
"""

import logging
from typing import Iterable

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.companion_enums import HelpStatus, PUBLIC_REVIEW, TASKERS
from backend.app.models.task import Task, TaskTraveler, TaskViaTraveler, TaskUser
from backend.app.models.traveler import UserTraveler
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("companion")


class TaskCascade:
    """Keeps tasks consistent when some of their members disappear."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def destroy_tasks(self, task_ids: Iterable[int]) -> list[int]:
        task_ids = sorted(set(task_ids))
        if not task_ids:
            return []

        await self.db.execute(delete(TaskUser).where(TaskUser.task_id.in_(task_ids)))
        await self.db.execute(delete(TaskTraveler).where(TaskTraveler.task_id.in_(task_ids)))
        await self.db.execute(delete(TaskViaTraveler).where(TaskViaTraveler.task_id.in_(task_ids)))
        await self.db.execute(delete(Task).where(Task.id.in_(task_ids)))
        await self.db.flush()

        for task_id in task_ids:
            await log_event(self.db, AuditAction.TASK_DESTROYED, target_type="task", target_id=task_id)
        return task_ids

    async def rerank_taskers(self, members: list[TaskViaTraveler]) -> int:
        """
        Promote the first backup when the helper is gone, then compact
        backup ranks to 0..k-1.

        Returns:
            Number of members updated
        """
        backups = sorted(
            (m for m in members if m.status == HelpStatus.BACKUP),
            key=lambda m: (m.rank, m.id)
        )
        has_helper = any(m.status == HelpStatus.HELPER for m in members)

        updated = 0
        if not has_helper and backups:
            promoted = backups.pop(0)
            promoted.status = HelpStatus.HELPER
            promoted.rank = 0
            updated += 1

        for rank, backup in enumerate(backups):
            if backup.rank != rank:
                backup.rank = rank
                updated += 1

        if updated:
            await self.db.flush()
        return updated

    async def _user_ids_by_traveler(self, traveler_ids: set[int]) -> dict[int, set[int]]:
        users: dict[int, set[int]] = {traveler_id: set() for traveler_id in traveler_ids}
        if not traveler_ids:
            return users
        result = await self.db.execute(
            select(UserTraveler.traveler_id, UserTraveler.user_id)
            .where(UserTraveler.traveler_id.in_(sorted(traveler_ids)))
        )
        for traveler_id, user_id in result.all():
            users[traveler_id].add(user_id)
        return users

    async def cascade(self, passenger_ids: Iterable[int]) -> tuple[list[int], list[int]]:
        """
        Adjust the tasks still valuing a membership of the given passengers.

        Memberships of the passengers in surviving tasks are removed here.

        Returns:
            (destroyed task IDs, removed member IDs)
        """
        deleted = set(passenger_ids)
        if not deleted:
            return [], []

        result = await self.db.execute(
            select(TaskViaTraveler.task_id).where(
                TaskViaTraveler.via_traveler_id.in_(sorted(deleted)),
                TaskViaTraveler.status.in_(list(PUBLIC_REVIEW))
            ).distinct()
        )
        task_ids = sorted(result.scalars().all())
        if not task_ids:
            return [], []

        result = await self.db.execute(
            select(TaskViaTraveler).where(TaskViaTraveler.task_id.in_(task_ids)).order_by(TaskViaTraveler.id)
        )
        members_by_task: dict[int, list[TaskViaTraveler]] = {task_id: [] for task_id in task_ids}
        for member in result.scalars().all():
            members_by_task[member.task_id].append(member)

        result = await self.db.execute(select(TaskTraveler).where(TaskTraveler.task_id.in_(task_ids)))
        beneficiaries_by_task: dict[int, list[TaskTraveler]] = {task_id: [] for task_id in task_ids}
        for beneficiary in result.scalars().all():
            beneficiaries_by_task[beneficiary.task_id].append(beneficiary)

        result = await self.db.execute(select(TaskUser).where(TaskUser.task_id.in_(task_ids)))
        task_users_by_task: dict[int, list[TaskUser]] = {task_id: [] for task_id in task_ids}
        for task_user in result.scalars().all():
            task_users_by_task[task_user.task_id].append(task_user)

        empty_tasks: list[int] = []
        surviving: dict[int, tuple[list[TaskViaTraveler], set[int], bool]] = {}
        for task_id in task_ids:
            members = members_by_task[task_id]
            beneficiaries = beneficiaries_by_task[task_id]
            removed = [m for m in members if m.via_traveler_id in deleted]
            remaining = [m for m in members if m.via_traveler_id not in deleted]

            traveler_ids = {m.traveler_id for m in remaining} | {b.traveler_id for b in beneficiaries}
            has_helpee = any(m.status == HelpStatus.HELPEE for m in remaining)

            if not traveler_ids or (not beneficiaries and not has_helpee):
                empty_tasks.append(task_id)
                continue

            tasker_removed = any(m.status in TASKERS for m in removed)
            surviving[task_id] = (remaining, traveler_ids, tasker_removed)

        destroyed = await self.destroy_tasks(empty_tasks)

        removed_ids: list[int] = []
        for task_id in surviving:
            removed_ids.extend(m.id for m in members_by_task[task_id] if m.via_traveler_id in deleted)
        if removed_ids:
            await self.db.execute(delete(TaskViaTraveler).where(TaskViaTraveler.id.in_(removed_ids)))
            await self.db.flush()

        all_travelers = set()
        for _, traveler_ids, _ in surviving.values():
            all_travelers |= traveler_ids
        users_by_traveler = await self._user_ids_by_traveler(all_travelers)

        stale_task_users: list[int] = []
        reranked = 0
        for task_id, (remaining, traveler_ids, tasker_removed) in surviving.items():
            user_ids = set()
            for traveler_id in traveler_ids:
                user_ids |= users_by_traveler[traveler_id]
            stale_task_users.extend(
                tu.id for tu in task_users_by_task[task_id] if tu.user_id not in user_ids
            )
            if tasker_removed:
                reranked += await self.rerank_taskers(remaining)

        if stale_task_users:
            await self.db.execute(delete(TaskUser).where(TaskUser.id.in_(stale_task_users)))
            await self.db.flush()

        logger.info(
            "Task cascade complete",
            extra={
                "tasks": len(task_ids),
                "destroyed_tasks": len(destroyed),
                "removed_members": len(removed_ids),
                "reranked_members": reranked,
            }
        )
        return destroyed, sorted(removed_ids)
