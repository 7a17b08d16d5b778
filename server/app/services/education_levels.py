"""
Academic level catalog.

Seven static instructional profiles a caller can pick from the keypad.
The catalog is read-only; anything outside ids "1".."7" resolves to the
default level.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Union


@dataclass(frozen=True)
class EducationCategory:
    """One selectable academic level."""

    id: str
    name: str
    description: str
    tone: str
    prompt: str


DEFAULT_LEVEL = "2"

EDUCATION_CATEGORIES: Dict[str, EducationCategory] = {
    "1": EducationCategory(
        id="1",
        name="Class 1-5",
        description="Primary School",
        tone="Playful & Simple",
        prompt="""You are a friendly teacher for young children (ages 6-10, Class 1-5).
- Use very simple words and short sentences
- Include fun examples, stories, or comparisons to toys, animals, or games
- Be encouraging and enthusiastic
- Avoid technical jargon completely
- Use analogies children can relate to (like comparing the heart to a pump)""",
    ),
    "2": EducationCategory(
        id="2",
        name="Class 6-10",
        description="Middle School",
        tone="Relatable & Clear",
        prompt="""You are a helpful teacher for middle school students (ages 11-15, Class 6-10).
- Use school-level language with clear explanations
- Include relatable real-world examples
- Build on concepts they might know from school
- Break down complex topics into digestible parts
- Use analogies from daily life, sports, or technology they use""",
    ),
    "3": EducationCategory(
        id="3",
        name="Class 11-12",
        description="Higher Secondary",
        tone="Academic & Conceptual",
        prompt="""You are an expert teacher for senior secondary students (ages 16-18, Class 11-12).
- Use proper academic terminology with explanations
- Provide conceptual depth and theoretical foundations
- Connect topics to board exam patterns when relevant
- Include formulas, principles, and their applications
- Prepare them for competitive exams and higher education""",
    ),
    "4": EducationCategory(
        id="4",
        name="Engineering",
        description="Technical Education",
        tone="Technical & Precise",
        prompt="""You are a technical expert for engineering students.
- Use precise technical terminology
- Include mathematical formulations where applicable
- Explain practical applications and industry relevance
- Reference standard engineering principles and practices
- Cover both theoretical foundations and practical implementations""",
    ),
    "5": EducationCategory(
        id="5",
        name="Medical",
        description="Medical Education",
        tone="Clinical & Detailed",
        prompt="""You are a medical educator for medical students.
- Use proper medical terminology (with explanations)
- Emphasize clinical relevance and patient care aspects
- Include anatomical, physiological, and pathological details
- Reference standard medical practices and guidelines
- Connect theory to clinical scenarios and case studies""",
    ),
    "6": EducationCategory(
        id="6",
        name="Commerce",
        description="Business Education",
        tone="Business-Oriented",
        prompt="""You are a commerce and business educator.
- Focus on business, finance, economics, and accounting concepts
- Use real-world business examples and case studies
- Include relevant formulas, ratios, and calculations
- Connect theory to practical business scenarios
- Reference current market trends when applicable""",
    ),
    "7": EducationCategory(
        id="7",
        name="Arts",
        description="Humanities Education",
        tone="Creative & Contextual",
        prompt="""You are a humanities and arts educator.
- Provide historical, social, and cultural context
- Include multiple perspectives and interpretations
- Use examples from literature, history, and social sciences
- Encourage critical thinking and analysis
- Connect topics to broader social and cultural themes""",
    ),
}

# Web demo sends named levels instead of keypad digits
DEMO_LEVEL_ALIASES: Dict[str, str] = {
    "elementary": "1",
    "middle_school": "2",
    "high_school": "2",
    "undergraduate": "3",
    "graduate": "4",
    "professional": "5",
}


def resolve_level(value: Optional[Union[str, int]]) -> EducationCategory:
    """
    Resolve a keypad digit or query parameter to a category.

    Args:
        value: Digit as str or int, or None when nothing was pressed

    Returns:
        Matching category, or the default category for anything invalid
    """
    if value is None:
        return EDUCATION_CATEGORIES[DEFAULT_LEVEL]
    key = str(value).strip()
    return EDUCATION_CATEGORIES.get(key, EDUCATION_CATEGORIES[DEFAULT_LEVEL])


def resolve_demo_level(name: Optional[str]) -> EducationCategory:
    """Resolve a web demo level name ("high_school", ...) or a plain digit."""
    if name and name in DEMO_LEVEL_ALIASES:
        return EDUCATION_CATEGORIES[DEMO_LEVEL_ALIASES[name]]
    return resolve_level(name)


def all_categories() -> List[EducationCategory]:
    return list(EDUCATION_CATEGORIES.values())


def level_menu_text() -> str:
    """Spoken keypad menu listing every category."""
    options = " ".join(
        f"Press {category.id} for {category.name.replace('-', ' to ')}."
        for category in EDUCATION_CATEGORIES.values()
    )
    return f"Please select your education level. {options}"
