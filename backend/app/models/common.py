"""Common types and enums shared across all models."""

from enum import Enum
from typing import TypeVar


class MaterialType(str, Enum):
    """Kind of study material; selects the sub-pipeline."""

    summary = "summary"
    study_guide = "study_guide"
    practice_quiz = "practice_quiz"


class SkillLevel(str, Enum):
    """Learner tier controlling vocabulary and example complexity."""

    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"


class QuestionFormat(str, Enum):
    """Quiz question format."""

    multiple_choice = "multiple_choice"
    open_ended = "open_ended"
    fill_in_blank = "fill_in_blank"


class ContentType(str, Enum):
    """Content kinds accepted by the difficulty adjuster."""

    question = "question"
    explanation = "explanation"
    summary = "summary"


class ContentKind(str, Enum):
    """Prompt template families of the generation client."""

    summary = "summary"
    study_guide = "study_guide"
    concept_review = "concept_review"
    quiz_section = "quiz_section"
    explanation = "explanation"
    difficulty = "difficulty"


E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: type[E], value: str, *, aliases: dict[str, str] | None = None) -> E:
    """Parse an enum member case-insensitively, accepting '-' or ' ' for '_'.

    Raises:
        ValueError: If the value matches no member
    """
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    if aliases and key in aliases:
        key = aliases[key]
    return enum_cls(key)
