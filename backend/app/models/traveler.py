"""
Traveler database models.

A traveler is a person who flies; users manage one or more travelers.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from backend.app.db.session import Base


class Traveler(Base):
    """Traveler model."""
    __tablename__ = "travelers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    public_name = Column(String(50), nullable=False)
    age_bracket = Column(String(10), nullable=True)
    gender = Column(String(1), nullable=True)

    def __repr__(self):
        return f"<Traveler(id={self.id}, public_name='{self.public_name}')>"


class UserTraveler(Base):
    """Link between a user and a traveler the user manages."""
    __tablename__ = "users_travelers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    traveler_id = Column(Integer, ForeignKey('travelers.id'), nullable=False, index=True)
    relation = Column(String(20), nullable=False, default="self")

    __table_args__ = (
        UniqueConstraint('user_id', 'traveler_id', name='uq_users_travelers'),
    )

    def __repr__(self):
        return f"<UserTraveler(user_id={self.user_id}, traveler_id={self.traveler_id})>"
