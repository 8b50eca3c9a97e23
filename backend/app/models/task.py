"""
Task database models.

A task is a help request scoped to an airport pair, a neighborhood and a
time window. Beneficiaries (TaskTraveler) need not fly on a via yet;
members (TaskViaTraveler) are via-linked and carry a help status and rank.
"""

from sqlalchemy import Column, Integer, String, Date, Time, ForeignKey, Enum, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.companion_enums import TaskStatus, HelpStatus


class Task(Base):
    """
    Task model.

    `via_id` is null for provisional tasks (beneficiaries without a leg).
    """
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    via_id = Column(Integer, ForeignKey('vias.id'), nullable=True, index=True)
    status = Column(Enum(TaskStatus), default=TaskStatus.OPEN, nullable=False, index=True)

    dep_airport_id = Column(String(4), ForeignKey('airports.id'), nullable=True)
    arr_airport_id = Column(String(4), ForeignKey('airports.id'), nullable=True)
    neighborhood_id = Column(Integer, ForeignKey('neighborhoods.id'), nullable=True)
    dep_address_id = Column(Integer, ForeignKey('addresses.id'), nullable=True)
    arr_address_id = Column(Integer, ForeignKey('addresses.id'), nullable=True)

    start_date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Task(id={self.id}, via_id={self.via_id}, status='{self.status}')>"


class TaskTraveler(Base):
    """Beneficiary of a task."""
    __tablename__ = "tasks_travelers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey('tasks.id'), nullable=False, index=True)
    traveler_id = Column(Integer, ForeignKey('travelers.id'), nullable=False, index=True)


class TaskViaTraveler(Base):
    """Via-linked member of a task (helpee, helper, backup, applicant...)."""
    __tablename__ = "tasks_vias_travelers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey('tasks.id'), nullable=False, index=True)
    via_id = Column(Integer, ForeignKey('vias.id'), nullable=False, index=True)
    traveler_id = Column(Integer, ForeignKey('travelers.id'), nullable=False, index=True)
    via_traveler_id = Column(Integer, ForeignKey('vias_travelers.id'), nullable=False, index=True)

    status = Column(Enum(HelpStatus), default=HelpStatus.HELPEE, nullable=False)
    rank = Column(Integer, default=0, nullable=False)  # Backup order, 0 = first in line

    def __repr__(self):
        return f"<TaskViaTraveler(id={self.id}, task_id={self.task_id}, status='{self.status}', rank={self.rank})>"


class TaskUser(Base):
    """User attached to a task through one of its travelers."""
    __tablename__ = "tasks_users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey('tasks.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
