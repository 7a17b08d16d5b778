"""
Caller and turn persistence.

Every operation opens its own AsyncSession from the injected factory, so
concurrent webhooks never share ORM state. Writes are scoped to a single
caller's rows.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.models.caller import Caller
from app.models.turn import Turn
from app.services.education_levels import DEFAULT_LEVEL, resolve_level
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

logger = logging.getLogger(__name__)

PRIVATE_NUMBER_MARKERS = {"", "private", "unknown", "anonymous", "restricted"}


class SessionStoreError(Exception):
    """Raised when a caller or turn write cannot be completed."""


def normalize_phone_number(value: Optional[str]) -> str:
    """
    Strip a phone number down to digits and a single leading '+'.

    "+91 (987) 654-3210" -> "+919876543210". Idempotent.
    """
    if not value:
        return ""
    digits = re.sub(r"\D", "", value)
    if value.lstrip().startswith("+"):
        return f"+{digits}"
    return digits


def is_private_number(value: Optional[str]) -> bool:
    """Withheld or unparseable caller IDs get no stored history."""
    if not value or value.strip().lower() in PRIVATE_NUMBER_MARKERS:
        return True
    return not re.sub(r"\D", "", value)


@dataclass
class GenerationContext:
    """Recent turns for one caller, oldest first."""

    recent_questions: List[str] = field(default_factory=list)
    recent_answers: List[str] = field(default_factory=list)
    preferred_level: Optional[str] = None
    total_interactions: int = 0

    @classmethod
    def empty(cls) -> "GenerationContext":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.recent_questions


@dataclass
class CallerStats:
    total_turns: int
    level_usage: List[Dict[str, Any]]
    avg_response_time_ms: float


class SessionStore:
    """
    Caller identity, turn history, and preferences.

    Usage:
        store = SessionStore(async_session_maker)
        caller = await store.find_or_create_caller("+919876543210")
        context = await store.recent_context(caller.id)
        await store.record_turn(caller.id, caller.phone_number, "3", q, a, 1840)
    """

    def __init__(self, session_factory: async_sessionmaker, context_limit: int = 5):
        self._session_factory = session_factory
        self.context_limit = context_limit

    async def find_or_create_caller(self, phone_number: str) -> Caller:
        """
        Look up a caller by normalized phone number, creating one if unseen.

        Raises:
            SessionStoreError: If the database cannot be read or written
        """
        phone = normalize_phone_number(phone_number)
        if not phone:
            raise SessionStoreError(f"Cannot identify caller from number: {phone_number!r}")

        try:
            async with self._session_factory() as session:
                caller = await self._get_caller_by_phone(session, phone)
                if caller:
                    return caller

                caller = Caller(phone_number=phone, preferred_level=DEFAULT_LEVEL, total_calls=0)
                session.add(caller)
                try:
                    await session.commit()
                except IntegrityError:
                    # Another webhook for the same number created it first
                    await session.rollback()
                    caller = await self._get_caller_by_phone(session, phone)
                    if caller is None:
                        raise
                    return caller

                logger.info(f"New caller created: {phone}")
                return caller

        except SQLAlchemyError as e:
            logger.error(f"Error finding/creating caller {phone}: {e}", exc_info=True)
            raise SessionStoreError("Failed to process caller") from e

    async def get_caller(self, phone_number: str) -> Optional[Caller]:
        phone = normalize_phone_number(phone_number)
        if not phone:
            return None
        async with self._session_factory() as session:
            return await self._get_caller_by_phone(session, phone)

    @staticmethod
    async def _get_caller_by_phone(session, phone: str) -> Optional[Caller]:
        result = await session.execute(select(Caller).where(Caller.phone_number == phone))
        return result.scalar_one_or_none()

    async def record_turn(
        self,
        caller_id: int,
        phone_number: str,
        level: str,
        question: str,
        answer: str,
        response_time_ms: int,
        audio_url: Optional[str] = None,
    ) -> Turn:
        """
        Append a turn and bump the caller's turn count.

        Both writes share one transaction.

        Raises:
            SessionStoreError: If the turn could not be saved
        """
        level_id = resolve_level(level).id
        try:
            async with self._session_factory() as session:
                turn = Turn(
                    caller_id=caller_id,
                    phone_number=normalize_phone_number(phone_number),
                    education_level=level_id,
                    question=question,
                    answer=answer,
                    response_time_ms=int(response_time_ms),
                    audio_url=audio_url,
                )
                session.add(turn)
                await session.execute(
                    update(Caller)
                    .where(Caller.id == caller_id)
                    .values(total_calls=Caller.total_calls + 1)
                )
                await session.commit()

            logger.info(f"Turn saved for caller {caller_id} (level {level_id})")
            return turn

        except SQLAlchemyError as e:
            logger.error(f"Error saving turn for caller {caller_id}: {e}", exc_info=True)
            raise SessionStoreError("Failed to save turn") from e

    async def recent_context(self, caller_id: int, limit: Optional[int] = None) -> GenerationContext:
        """
        Build generation context from the caller's most recent turns.

        Never raises; personalization is optional, so any failure yields an
        empty context.
        """
        limit = limit or self.context_limit
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Turn)
                    .where(Turn.caller_id == caller_id)
                    .order_by(Turn.created_at.desc(), Turn.id.desc())
                    .limit(limit)
                )
                # Newest-first from the query; prompts want oldest-first
                turns = list(reversed(result.scalars().all()))
                caller = await session.get(Caller, caller_id)

            return GenerationContext(
                recent_questions=[t.question for t in turns],
                recent_answers=[t.answer for t in turns],
                preferred_level=caller.preferred_level if caller else None,
                total_interactions=caller.total_calls if caller else 0,
            )

        except Exception as e:
            logger.error(f"Error getting conversation context for caller {caller_id}: {e}")
            return GenerationContext.empty()

    async def update_preferred_level(self, caller_id: int, level: str) -> None:
        """Remember the level used in the latest turn. Failures are logged only."""
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(Caller)
                    .where(Caller.id == caller_id)
                    .values(preferred_level=resolve_level(level).id)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error updating level for caller {caller_id}: {e}")

    async def recent_turns_for_phone(self, phone_number: str, limit: int = 10) -> List[Turn]:
        """Most recent turns for a number, newest first."""
        phone = normalize_phone_number(phone_number)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Turn)
                    .where(Turn.phone_number == phone)
                    .order_by(Turn.created_at.desc(), Turn.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error getting recent turns for {phone}: {e}")
            return []

    async def caller_stats(self, caller_id: int) -> CallerStats:
        """
        Per-caller usage summary.

        Raises:
            SessionStoreError: If the turns cannot be read
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Turn.education_level, Turn.response_time_ms).where(
                        Turn.caller_id == caller_id
                    )
                )
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Error getting stats for caller {caller_id}: {e}")
            raise SessionStoreError("Failed to get caller statistics") from e

        level_counts = Counter(level for level, _ in rows)
        total_time = sum(response_time for _, response_time in rows)

        return CallerStats(
            total_turns=len(rows),
            level_usage=[
                {"level": level, "count": count} for level, count in level_counts.most_common()
            ],
            avg_response_time_ms=(total_time / len(rows)) if rows else 0.0,
        )

    async def save_transcript(
        self,
        phone_number: str,
        messages: List[Dict[str, str]],
        level: str = DEFAULT_LEVEL,
    ) -> int:
        """
        Store a finished demo conversation.

        Each user message immediately followed by an assistant message
        becomes one turn. Returns the number of turns saved.
        """
        caller = await self.find_or_create_caller(phone_number)
        saved = 0
        for current, following in zip(messages, messages[1:]):
            if current.get("role") == "user" and following.get("role") == "assistant":
                await self.record_turn(
                    caller.id,
                    caller.phone_number,
                    level,
                    current.get("content", ""),
                    following.get("content", ""),
                    response_time_ms=0,
                )
                saved += 1
        return saved
