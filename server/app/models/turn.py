"""Turn (question/answer exchange) model."""

from app.models.base import Base, utcnow
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship


class Turn(Base):
    """One question and its answer.

    Turns are append-only: rows are inserted once and never updated.
    """

    __tablename__ = "turns"

    id = Column(Integer, primary_key=True, index=True)
    caller_id = Column(Integer, ForeignKey("callers.id"), nullable=False, index=True)
    phone_number = Column(String(20), nullable=False, index=True)

    education_level = Column(String(1), nullable=False)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    audio_url = Column(String(500))
    response_time_ms = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    caller = relationship("Caller", back_populates="turns")

    __table_args__ = (
        Index("ix_turns_caller_created", "caller_id", "created_at"),
        Index("ix_turns_phone_created", "phone_number", "created_at"),
    )

    def __repr__(self):
        return (
            f"<Turn(id={self.id}, caller_id={self.caller_id}, "
            f"level='{self.education_level}', response_time_ms={self.response_time_ms})>"
        )
