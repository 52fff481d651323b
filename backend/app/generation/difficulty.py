"""Difficulty adjustment - rewrite content for another skill level.

The rewritten content must keep the structural contract of its type. When it
does not, callers using adjust_or_keep get the original content back.
"""

import logging
from typing import Any

from pydantic import ValidationError

from backend.app.errors import ContentValidationError, InputError
from backend.app.generation.retry import GenerationMetrics
from backend.app.llm.client import GenerationClient
from backend.app.llm.prompts import SKILL_LEVEL_GUIDELINES
from backend.app.models.common import ContentType, QuestionFormat, SkillLevel, parse_enum
from backend.app.models.items import Explanation, QuizQuestion

logger = logging.getLogger(__name__)

__all__ = ["SKILL_LEVEL_GUIDELINES", "adjust", "adjust_or_keep", "validate_adjusted"]

_SUMMARY_KEYS = ("content", "summary", "text")


def _to_payload(content: Any, content_type: ContentType) -> tuple[Any, Any]:
    """Return (JSON payload sent to the model, typed original)."""
    try:
        if content_type == ContentType.question:
            question = content if isinstance(content, QuizQuestion) else QuizQuestion.model_validate(content)
            return question.to_prompt_payload(), question
        if content_type == ContentType.explanation:
            explanation = content if isinstance(content, Explanation) else Explanation.model_validate(content)
            return explanation.to_prompt_payload(), explanation
    except ValidationError as e:
        raise InputError(f"{content_type.value} content is malformed: {e.errors()[0]['msg']}") from e

    if not isinstance(content, str) or not content.strip():
        raise InputError("summary content must be a non-empty string")
    return {"summary": content}, content


def validate_adjusted(data: Any, content_type: ContentType, original: Any) -> Any:
    """Check rewritten content against the contract of its type.

    Returns:
        The rewritten content typed like the original

    Raises:
        ContentValidationError: Required fields missing, or format changed
    """
    if content_type == ContentType.summary:
        if isinstance(data, str) and data.strip():
            return data.strip()
        if isinstance(data, dict):
            for key in _SUMMARY_KEYS:
                value = data.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        raise ContentValidationError("adjusted summary in invalid format")

    if not isinstance(data, dict):
        raise ContentValidationError(f"adjusted {content_type.value} is not an object")

    if content_type == ContentType.question:
        fmt = original.format
        returned = data.get("format")
        if returned is not None:
            try:
                returned_fmt = parse_enum(QuestionFormat, str(returned))
            except ValueError:
                returned_fmt = None
            if returned_fmt != fmt:
                raise ContentValidationError(f"adjusted question changed format to {returned!r}")
        try:
            adjusted = QuizQuestion.model_validate({**data, "kind": "quiz_question", "format": fmt})
        except ValidationError as e:
            raise ContentValidationError(
                f"adjusted question missing required fields: {e.errors()[0]['msg']}"
            ) from e
        return adjusted.model_copy(update={"detailed_explanation": original.detailed_explanation})

    try:
        return Explanation.model_validate({**data, "kind": "explanation"})
    except ValidationError as e:
        raise ContentValidationError(
            f"adjusted explanation missing required fields: {e.errors()[0]['msg']}"
        ) from e


async def adjust(
    client: GenerationClient,
    content: Any,
    content_type: ContentType,
    from_level: SkillLevel,
    to_level: SkillLevel,
    preserve_core: bool = True,
    subject: str | None = None,
) -> Any:
    """Rewrite content from one skill level to another.

    Content may be a typed item or its JSON shape; the result has the same
    representation as the input. Equal levels return the content unchanged
    without a model call.

    Raises:
        InputError: Content does not match its declared type
        ContentValidationError: Rewritten content breaks the structural contract
        GenerationError: The model call failed
    """
    if from_level == to_level:
        return content

    payload, original = _to_payload(content, content_type)
    data = await client.rewrite_for_level(
        payload, content_type, from_level, to_level, preserve_core, subject
    )
    adjusted = validate_adjusted(data, content_type, original)

    if content_type != ContentType.summary and not isinstance(content, (QuizQuestion, Explanation)):
        return adjusted.to_prompt_payload()
    return adjusted


async def adjust_or_keep(
    client: GenerationClient,
    content: Any,
    content_type: ContentType,
    from_level: SkillLevel,
    to_level: SkillLevel,
    preserve_core: bool = True,
    subject: str | None = None,
    *,
    metrics: GenerationMetrics | None = None,
) -> tuple[Any, bool]:
    """Like adjust, but keep the original content on structural failure.

    Returns:
        (content, adjusted) where adjusted is False when the original was kept
    """
    if from_level == to_level:
        return content, False

    try:
        adjusted = await adjust(
            client, content, content_type, from_level, to_level, preserve_core, subject
        )
    except ContentValidationError as e:
        logger.warning(f"Keeping original {content_type.value}: {e}")
        (metrics or GenerationMetrics()).inc_difficulty_fallback(content_type.value)
        return content, False
    return adjusted, True
