"""Quiz section generation with count validation and bounded retry."""

import logging
from collections.abc import Awaitable, Callable

from backend.app.errors import CountMismatchError, GenerationError, RetryExhaustedError, SectionGenerationError
from backend.app.generation.retry import (
    CancelToken,
    GenerationLogger,
    GenerationMetrics,
    RetryPolicy,
    retry_async,
)
from backend.app.llm.client import GenerationClient
from backend.app.models.common import ContentKind, QuestionFormat, SkillLevel
from backend.app.models.docs import Section
from backend.app.models.items import QuizQuestion

logger = logging.getLogger(__name__)


def is_retryable_generation_error(exc: BaseException) -> bool:
    """Recoverable failures of a single unit: model errors and count mismatches."""
    return isinstance(exc, (GenerationError, CountMismatchError))


async def generate_section_with_retry(
    client: GenerationClient,
    section: Section,
    quota: int,
    *,
    max_attempts: int = 3,
    section_total: int = 1,
    question_format: QuestionFormat = QuestionFormat.multiple_choice,
    level: SkillLevel = SkillLevel.intermediate,
    subject: str | None = None,
    policy: RetryPolicy | None = None,
    cancel_token: CancelToken | None = None,
    sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    metrics: GenerationMetrics | None = None,
    structured_logger: GenerationLogger | None = None,
) -> list[QuizQuestion]:
    """Generate exactly `quota` questions for a section, retrying on failure.

    A response with the wrong number of questions counts as a failed attempt,
    as does any GenerationError. Partial results are never returned.

    Args:
        client: Generation client
        section: Section to generate from
        quota: Exact number of questions required
        max_attempts: Attempt budget (ignored when policy is given)
        policy: Full retry policy (attempts, backoff, jitter)

    Returns:
        Exactly `quota` questions; [] for a quota of 0 without calling the model

    Raises:
        SectionGenerationError: Every attempt failed; names section, quota, last count
    """
    if quota == 0:
        return []

    policy = policy or RetryPolicy(max_attempts=max_attempts)
    metrics = metrics or GenerationMetrics()
    structured_logger = structured_logger or GenerationLogger()
    kind = ContentKind.quiz_section.value
    last_count: int | None = None

    async def attempt_once(attempt: int) -> list[QuizQuestion]:
        nonlocal last_count
        questions = await client.generate_quiz_section(
            section.text,
            quota,
            question_format,
            level,
            subject,
            section.index,
            section_total,
        )
        last_count = len(questions)
        if len(questions) != quota:
            raise CountMismatchError(expected=quota, actual=len(questions))
        return questions

    def on_retry(attempt: int, error: BaseException) -> None:
        metrics.inc_retry(kind)
        structured_logger.log_retry(kind, attempt, type(error).__name__)
        logger.warning(
            f"Section {section.index + 1} attempt {attempt}/{policy.max_attempts} failed: {error}"
        )

    try:
        return await retry_async(
            attempt_once,
            policy,
            is_retryable=is_retryable_generation_error,
            cancel_token=cancel_token,
            sleep_fn=sleep_fn,
            on_retry=on_retry,
        )
    except RetryExhaustedError as e:
        raise SectionGenerationError(
            section_index=section.index,
            quota=quota,
            last_count=last_count,
            attempts=e.attempts,
        ) from e.last_error
