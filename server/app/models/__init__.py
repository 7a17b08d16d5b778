"""Database models for the application."""

from app.models.caller import Caller
from app.models.turn import Turn

__all__ = ["Caller", "Turn"]
