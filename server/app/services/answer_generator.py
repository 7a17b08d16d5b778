"""
Answer generation for the voice tutor.

Calls an OpenAI-compatible Chat Completions endpoint (Groq by default)
with a level-specific system prompt and the caller's recent history,
then cleans the output for audio playback.

Attempt plan for one question:
    1. Context-aware completion, retried on rate limiting (linear backoff)
    2. Single context-free completion, only if step 1 failed
    3. GenerationError
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from app.services.education_levels import EducationCategory, resolve_level
from app.services.session_store import GenerationContext
from app.services.system_prompts import (
    MAX_CONTEXT_TURNS,
    build_history_messages,
    build_system_prompt,
    build_user_message,
)
from app.utils.retry import RetryExhaustedError, with_retry
from openai import APIStatusError, AsyncOpenAI, RateLimitError

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """No strategy produced an answer."""

    def __init__(self, message: str, outcomes: Optional[List["GenerationOutcome"]] = None):
        super().__init__(message)
        self.outcomes = outcomes or []


class EmptyCompletionError(Exception):
    """Provider returned no usable text."""


@dataclass
class GenerationResult:
    text: str
    tokens_used: int
    used_fallback: bool = False
    attempts: int = 1


@dataclass
class AttemptStrategy:
    """One way of asking the model, with its own attempt budget."""

    name: str
    messages: List[Dict[str, str]]
    max_attempts: int
    is_fallback: bool = False


@dataclass
class GenerationOutcome:
    strategy: str
    result: Optional[GenerationResult] = None
    error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.result is not None


def is_rate_limit_error(error: BaseException) -> bool:
    """True for provider signals that the request should be retried later."""
    if isinstance(error, RateLimitError):
        return True
    if isinstance(error, APIStatusError) and error.status_code == 429:
        return True
    return False


def clean_for_voice(text: str) -> str:
    """Strip markdown so the answer reads naturally when spoken."""
    text = text.replace("**", "")
    text = text.replace("*", "")
    text = re.sub(r"#{1,6}\s", "", text)  # headers
    text = re.sub(r"`{1,3}", "", text)  # code spans and fences
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)  # links keep their text
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[•●○■□]", "-", text)
    return text.strip()


def context_from_history(history: List[Dict[str, str]], level: str) -> GenerationContext:
    """
    Build generation context from web demo chat history.

    Only a user message directly followed by an assistant message counts
    as a turn, so an unanswered question never shifts the pairing.
    """
    pairs = [
        (current.get("content", ""), following.get("content", ""))
        for current, following in zip(history, history[1:])
        if current.get("role") == "user" and following.get("role") == "assistant"
    ]
    pairs = pairs[-MAX_CONTEXT_TURNS:]
    return GenerationContext(
        recent_questions=[question for question, _ in pairs],
        recent_answers=[answer for _, answer in pairs],
        preferred_level=level,
        total_interactions=len(history),
    )


class AnswerGenerator:
    """
    Level-aware answer generation with retry and fallback.

    Example usage:
        generator = AnswerGenerator(AsyncOpenAI(api_key=..., base_url=...), model="llama-3.3-70b-versatile")
        result = await generator.generate("What is photosynthesis?", "2", context)
        print(result.text)
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        top_p: float = 0.8,
        max_attempts: int = 3,
        retry_base_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize answer generator.

        Args:
            client: OpenAI-compatible async client
            model: Model identifier
            temperature: Sampling temperature (default: 0.7)
            max_tokens: Maximum tokens per answer (default: 1024)
            top_p: Nucleus sampling (default: 0.8)
            max_attempts: Attempts for the primary strategy on rate limiting (default: 3)
            retry_base_delay: Seconds multiplied by attempt number between retries (default: 2.0)
            sleep: Awaitable sleep, injectable for tests
        """
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.top_p = top_p
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep

        logger.info(f"AnswerGenerator initialized with model: {model}")

    @classmethod
    def from_settings(cls, settings) -> "AnswerGenerator":
        client = AsyncOpenAI(api_key=settings.LLM_API_KEY, base_url=settings.LLM_BASE_URL)
        return cls(
            client=client,
            model=settings.LLM_MODEL,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
            top_p=settings.LLM_TOP_P,
            max_attempts=settings.LLM_MAX_ATTEMPTS,
            retry_base_delay=settings.LLM_RETRY_BASE_DELAY,
        )

    def plan_strategies(
        self,
        category: EducationCategory,
        question: str,
        context: Optional[GenerationContext] = None,
    ) -> List[AttemptStrategy]:
        """
        Ordered strategies for one question.

        Without usable context there is nothing to fall back from, so the
        plan is a single context-free strategy with the full retry budget.
        """
        user_message = {"role": "user", "content": build_user_message(question)}
        context_free = [
            {"role": "system", "content": build_system_prompt(category)},
            user_message,
        ]

        if not context or context.is_empty:
            return [AttemptStrategy("context-free", context_free, self.max_attempts)]

        context_aware = (
            [{"role": "system", "content": build_system_prompt(category, context)}]
            + build_history_messages(context)
            + [user_message]
        )
        return [
            AttemptStrategy("context-aware", context_aware, self.max_attempts),
            AttemptStrategy("context-free fallback", context_free, 1, is_fallback=True),
        ]

    async def generate(
        self,
        question: str,
        level: Union[str, EducationCategory],
        context: Optional[GenerationContext] = None,
    ) -> GenerationResult:
        """
        Generate a spoken-style answer.

        Args:
            question: Transcribed question
            level: Level id or resolved category
            context: Recent turns for this caller

        Returns:
            GenerationResult with cleaned text and token usage

        Raises:
            GenerationError: If every strategy failed
        """
        category = level if isinstance(level, EducationCategory) else resolve_level(level)
        start_time = time.time()

        outcomes: List[GenerationOutcome] = []
        for strategy in self.plan_strategies(category, question, context):
            if strategy.is_fallback:
                logger.info("Attempting fallback without conversation context...")

            outcome = await self._run_strategy(strategy)
            outcomes.append(outcome)

            if outcome.ok:
                elapsed_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"Answer generated via {strategy.name} in {elapsed_ms:.0f}ms "
                    f"({outcome.result.tokens_used} tokens)"
                )
                return outcome.result

            logger.error(f"LLM strategy '{strategy.name}' failed: {outcome.error}")

        last_error = outcomes[-1].error if outcomes else None
        raise GenerationError(
            "Failed to generate AI response", outcomes=outcomes
        ) from last_error

    async def generate_with_history(
        self,
        question: str,
        level: Union[str, EducationCategory],
        history: List[Dict[str, str]],
    ) -> GenerationResult:
        """Generate using chat history supplied by the web demo."""
        category = level if isinstance(level, EducationCategory) else resolve_level(level)
        return await self.generate(question, category, context_from_history(history, category.id))

    async def _run_strategy(self, strategy: AttemptStrategy) -> GenerationOutcome:
        attempts = 0

        async def attempt() -> GenerationResult:
            nonlocal attempts
            attempts += 1
            return await self._complete(strategy.messages)

        try:
            result = await with_retry(
                attempt,
                max_attempts=strategy.max_attempts,
                base_delay=self.retry_base_delay,
                should_retry=is_rate_limit_error,
                operation_name=f"LLM {strategy.name}",
                sleep=self._sleep,
            )
        except RetryExhaustedError as e:
            return GenerationOutcome(strategy.name, error=e.last_exception, attempts=attempts)
        except Exception as e:
            return GenerationOutcome(strategy.name, error=e, attempts=attempts)

        result.used_fallback = strategy.is_fallback
        result.attempts = attempts
        return GenerationOutcome(strategy.name, result=result, attempts=attempts)

    async def _complete(self, messages: List[Dict[str, Any]]) -> GenerationResult:
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
        )

        raw_text = completion.choices[0].message.content if completion.choices else None
        text = clean_for_voice(raw_text or "")
        if not text:
            raise EmptyCompletionError("LLM returned an empty response")

        usage = getattr(completion, "usage", None)
        return GenerationResult(text=text, tokens_used=usage.total_tokens if usage else 0)
