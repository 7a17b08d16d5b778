"""
System prompt templates for the voice tutor.

The prompt is rebuilt for every question: base role, level-specific
teaching style, and optionally a short excerpt of the caller's recent
questions so follow-ups stay coherent.
"""

from typing import Dict, List, Optional, Tuple

from app.services.education_levels import EducationCategory
from app.services.session_store import GenerationContext

# Prior exchanges quoted in the prompt, and how much of each answer
HISTORY_PAIRS_IN_PROMPT = 3
ANSWER_PREVIEW_CHARS = 100
# Prior exchanges replayed as chat messages
MAX_CONTEXT_TURNS = 5


BASE_SYSTEM_PROMPT = """You are GuruCall, an AI-powered voice tutor that helps students learn through phone calls.

## Your Role:
{level_prompt}

## Response Guidelines:
1. Keep responses concise but complete (ideal for voice playback)
2. Structure your answer clearly with main points
3. Use natural, conversational language suitable for audio
4. Avoid using special characters, markdown, or formatting
5. Aim for responses under 200 words for quick delivery
6. Be accurate and educational while being engaging

## Current Education Level: {name} ({description})
## Tone: {tone}"""


def truncate_answer(answer: str, limit: int = ANSWER_PREVIEW_CHARS) -> str:
    """Shorten a prior answer for quoting; short answers pass through unchanged."""
    if len(answer) <= limit:
        return answer
    return f"{answer[:limit]}..."


def recent_pairs(context: GenerationContext, limit: int) -> List[Tuple[str, str]]:
    """Last `limit` (question, answer) pairs in chronological order."""
    answers = list(context.recent_answers) + [""] * (
        len(context.recent_questions) - len(context.recent_answers)
    )
    pairs = list(zip(context.recent_questions, answers))
    return pairs[-limit:] if limit > 0 else []


def build_history_messages(
    context: Optional[GenerationContext],
    limit: int = MAX_CONTEXT_TURNS,
) -> List[Dict[str, str]]:
    """
    Replay recent turns as chat messages ahead of the new question.

    At most `limit` exchanges, answers truncated like the prompt excerpt.
    """
    if not context or context.is_empty:
        return []
    messages: List[Dict[str, str]] = []
    for question, answer in recent_pairs(context, limit):
        messages.append({"role": "user", "content": build_user_message(question)})
        if answer:
            messages.append({"role": "assistant", "content": truncate_answer(answer)})
    return messages


def build_history_section(context: GenerationContext) -> str:
    """
    Render prior Q/A pairs for the system prompt.

    Quotes the last HISTORY_PAIRS_IN_PROMPT exchanges, oldest first.
    """
    lines = ["## Recent Conversation History (for context):"]
    pairs = recent_pairs(context, HISTORY_PAIRS_IN_PROMPT)
    for i, (question, answer) in enumerate(pairs):
        lines.append(f"Previous Q{i + 1}: {question}")
        if answer:
            lines.append(f"Previous A{i + 1}: {truncate_answer(answer)}")
    lines.append("")
    lines.append("Use this history to provide continuity and avoid repetition.")
    return "\n".join(lines)


def build_system_prompt(
    category: EducationCategory,
    context: Optional[GenerationContext] = None,
) -> str:
    """
    Build the system prompt for one question.

    Args:
        category: Resolved academic level
        context: Recent turns for this caller (omitted for context-free generation)

    Returns:
        Complete system prompt string
    """
    prompt = BASE_SYSTEM_PROMPT.format(
        level_prompt=category.prompt,
        name=category.name,
        description=category.description,
        tone=category.tone,
    )

    if context and not context.is_empty:
        prompt += "\n\n" + build_history_section(context)

    return prompt


def build_user_message(question: str) -> str:
    return f"Student's Question: {question}"
