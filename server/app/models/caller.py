"""Caller model."""

from app.models.base import Base, TimestampMixin
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship, validates

VALID_LEVELS = {"1", "2", "3", "4", "5", "6", "7"}


class Caller(Base, TimestampMixin):
    """Phone-number-identified user of the tutoring line.

    Created the first time an unseen number completes a recording.
    Tracks the last academic level the caller used and how many
    question/answer turns they have completed across all calls.
    """

    __tablename__ = "callers"

    id = Column(Integer, primary_key=True, index=True)

    # Identity (normalized: digits and an optional leading +)
    phone_number = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(100))

    # Preferences
    preferred_level = Column(String(1), default="2", nullable=False)

    # Usage
    total_calls = Column(Integer, default=0, nullable=False)

    turns = relationship("Turn", back_populates="caller", cascade="all, delete-orphan")

    @validates("preferred_level")
    def validate_preferred_level(self, key, value):
        """Only the 7 catalog ids are storable."""
        if value not in VALID_LEVELS:
            raise ValueError(f"Invalid education level: {value}")
        return value

    def __repr__(self):
        return f"<Caller(id={self.id}, phone='{self.phone_number}', level='{self.preferred_level}')>"
