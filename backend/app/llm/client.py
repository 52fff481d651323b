"""Generation client with OpenAI integration.

Security: Reads API key from settings/environment only, never hardcoded.
Provides a deterministic stub when no key is present, for local runs and tests.
"""

import asyncio
import logging
import re
import time
from typing import Any, Protocol, TypeVar

from openai import APIError, APITimeoutError, AsyncOpenAI
from pydantic import BaseModel

from backend.app.config import Settings
from backend.app.errors import GenerationError, GenerationErrorKind
from backend.app.generation.retry import GenerationLogger, GenerationMetrics
from backend.app.llm import prompts
from backend.app.llm.parsing import extract_json_object, parse_item, parse_questions
from backend.app.models.common import ContentKind, ContentType, QuestionFormat, SkillLevel
from backend.app.models.items import (
    ConceptReview,
    Explanation,
    QuizQuestion,
    StudyGuideSection,
    SummaryItem,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# (temperature, max_tokens) per content kind
CALL_PARAMS: dict[ContentKind, tuple[float, int]] = {
    ContentKind.summary: (0.7, 1000),
    ContentKind.study_guide: (0.7, 4000),
    ContentKind.concept_review: (0.5, 1000),
    ContentKind.quiz_section: (0.3, 2000),
    ContentKind.explanation: (0.5, 500),
    ContentKind.difficulty: (0.4, 1500),
}


def timeouts_from_settings(settings: Settings) -> dict[ContentKind, float]:
    """Per-kind call timeouts in seconds."""
    return {
        ContentKind.summary: settings.summary_timeout_seconds,
        ContentKind.study_guide: settings.study_guide_timeout_seconds,
        ContentKind.concept_review: settings.study_guide_timeout_seconds,
        ContentKind.quiz_section: settings.quiz_timeout_seconds,
        ContentKind.explanation: settings.explanation_timeout_seconds,
        ContentKind.difficulty: settings.adjust_timeout_seconds,
    }


class GenerationClient(Protocol):
    """Protocol for generation client implementations.

    Every method makes at most one model call and either returns a validated
    result or raises GenerationError.
    """

    backend: str

    async def init(self) -> None:
        """Acquire resources before first use."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...

    async def summarize(self, text: str, level: SkillLevel, subject: str | None = None) -> SummaryItem:
        """Summarise one chunk of text at the given level."""
        ...

    async def generate_study_guide_section(
        self, text: str, level: SkillLevel, subject: str | None, index: int, total: int
    ) -> StudyGuideSection:
        """Generate the study guide section for chunk `index` of `total`."""
        ...

    async def generate_concept_review(
        self, sections: list[str], level: SkillLevel, subject: str | None = None
    ) -> ConceptReview:
        """Review the key concepts across all study guide sections."""
        ...

    async def generate_quiz_section(
        self,
        text: str,
        quota: int,
        question_format: QuestionFormat,
        level: SkillLevel,
        subject: str | None,
        section_index: int,
        section_total: int,
    ) -> list[QuizQuestion]:
        """Generate questions for one section. The count is not enforced here."""
        ...

    async def explain(
        self, question: QuizQuestion, context: str, level: SkillLevel, subject: str | None = None
    ) -> Explanation:
        """Generate a step-by-step explanation for a question's answer."""
        ...

    async def rewrite_for_level(
        self,
        payload: Any,
        content_type: ContentType,
        from_level: SkillLevel,
        to_level: SkillLevel,
        preserve_core: bool = True,
        subject: str | None = None,
    ) -> Any:
        """Rewrite content for another level; returns the decoded JSON unvalidated."""
        ...


class OpenAIGenerationClient:
    """OpenAI-backed generation client."""

    backend = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        *,
        base_url: str | None = None,
        timeouts: dict[ContentKind, float] | None = None,
        max_concurrency: int = 4,
        metrics: GenerationMetrics | None = None,
        structured_logger: GenerationLogger | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
            base_url: Optional API base URL (proxies, compatible servers)
            timeouts: Per-kind call timeouts in seconds (default 60s each)
            max_concurrency: Maximum simultaneous outbound calls
            metrics: Metrics recorder (optional, defaults to no-op)
            structured_logger: Structured call logger (optional, defaults to no-op)
            client: Preconfigured SDK client (tests)
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        # SDK retries are disabled; retries are owned and counted by the callers
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        self.model = model
        self._timeouts = timeouts or {}
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._metrics = metrics or GenerationMetrics()
        self._logger = structured_logger or GenerationLogger()

    async def init(self) -> None:
        logger.info(f"OpenAI generation client ready (model={self.model})")

    async def close(self) -> None:
        await self.client.close()

    async def _complete(self, kind: ContentKind, messages: prompts.Messages) -> str:
        """Run one chat completion in JSON mode and return the raw content.

        Raises:
            GenerationError: TIMEOUT, MODEL_ERROR (API failure or empty content)
        """
        temperature, max_tokens = CALL_PARAMS[kind]
        timeout = self._timeouts.get(kind, 60.0)

        async with self._semaphore:
            start = time.monotonic()
            try:
                response = await asyncio.wait_for(
                    self.client.chat.completions.create(
                        model=self.model,
                        messages=messages,  # type: ignore[arg-type]
                        temperature=temperature,
                        max_tokens=max_tokens,
                        response_format={"type": "json_object"},
                    ),
                    timeout=timeout,
                )
            except (TimeoutError, APITimeoutError) as e:
                self._record_failure(kind, start, "timeout")
                raise GenerationError(
                    GenerationErrorKind.TIMEOUT,
                    f"no response within {timeout:g}s",
                    content_kind=kind.value,
                ) from e
            except APIError as e:
                self._record_failure(kind, start, "api_error")
                raise GenerationError(
                    GenerationErrorKind.MODEL_ERROR, f"API error: {e.message}", content_kind=kind.value
                ) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            self._record_failure(kind, start, "empty_response")
            raise GenerationError(GenerationErrorKind.MODEL_ERROR, "empty response", content_kind=kind.value)

        elapsed_ms = (time.monotonic() - start) * 1000
        self._metrics.record_latency(kind.value, "success", elapsed_ms)
        self._logger.log_call(kind.value, "success", elapsed_ms)
        return content

    def _record_failure(self, kind: ContentKind, start: float, reason: str) -> None:
        elapsed_ms = (time.monotonic() - start) * 1000
        self._metrics.record_latency(kind.value, "error", elapsed_ms)
        self._metrics.inc_error(kind.value, reason)
        self._logger.log_call(kind.value, "error", elapsed_ms, error_reason=reason)

    async def _parsed(self, kind: ContentKind, messages: prompts.Messages, model_cls: type[M]) -> M:
        content = await self._complete(kind, messages)
        try:
            return parse_item(content, model_cls, content_kind=kind.value)
        except GenerationError:
            self._metrics.inc_error(kind.value, "parse_failure")
            raise

    async def summarize(self, text: str, level: SkillLevel, subject: str | None = None) -> SummaryItem:
        """Summarise one chunk of text."""
        messages = prompts.summary_messages(text, level, subject)
        return await self._parsed(ContentKind.summary, messages, SummaryItem)

    async def generate_study_guide_section(
        self, text: str, level: SkillLevel, subject: str | None, index: int, total: int
    ) -> StudyGuideSection:
        """Generate one study guide section, tagged with its position."""
        messages = prompts.study_guide_messages(text, level, subject, index, total)
        section = await self._parsed(ContentKind.study_guide, messages, StudyGuideSection)
        return section.model_copy(update={"index": index, "total": total})

    async def generate_concept_review(
        self, sections: list[str], level: SkillLevel, subject: str | None = None
    ) -> ConceptReview:
        """Review key concepts across sections."""
        messages = prompts.concept_review_messages(sections, level, subject)
        return await self._parsed(ContentKind.concept_review, messages, ConceptReview)

    async def generate_quiz_section(
        self,
        text: str,
        quota: int,
        question_format: QuestionFormat,
        level: SkillLevel,
        subject: str | None,
        section_index: int,
        section_total: int,
    ) -> list[QuizQuestion]:
        """Generate questions for one section."""
        kind = ContentKind.quiz_section
        messages = prompts.quiz_section_messages(
            text, quota, question_format, level, subject, section_index, section_total
        )
        content = await self._complete(kind, messages)
        try:
            return parse_questions(content, question_format, content_kind=kind.value)
        except GenerationError:
            self._metrics.inc_error(kind.value, "parse_failure")
            raise

    async def explain(
        self, question: QuizQuestion, context: str, level: SkillLevel, subject: str | None = None
    ) -> Explanation:
        """Generate a step-by-step explanation."""
        messages = prompts.explanation_messages(
            question.prompt, _answer_text(question), context, level, subject
        )
        return await self._parsed(ContentKind.explanation, messages, Explanation)

    async def rewrite_for_level(
        self,
        payload: Any,
        content_type: ContentType,
        from_level: SkillLevel,
        to_level: SkillLevel,
        preserve_core: bool = True,
        subject: str | None = None,
    ) -> Any:
        """Rewrite content for another level."""
        kind = ContentKind.difficulty
        messages = prompts.difficulty_messages(
            payload, content_type, from_level, to_level, preserve_core, subject
        )
        content = await self._complete(kind, messages)
        try:
            return extract_json_object(content, content_kind=kind.value)
        except GenerationError:
            self._metrics.inc_error(kind.value, "parse_failure")
            raise


_STUB_SENTENCE = re.compile(r"[^.!?]+[.!?]*")


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in _STUB_SENTENCE.findall(" ".join(text.split())) if s.strip()]


def _answer_text(question: QuizQuestion) -> str:
    """Correct answer as readable text (option text for multiple choice)."""
    if question.options is not None and question.correct_index is not None:
        return f"{question.correct_answer}. {question.options[question.correct_index]}"
    return question.correct_answer


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required).

    Outputs are derived from the input text only, so repeated runs produce
    identical material and quiz sections always hit their quota.
    """

    backend = "stub"

    async def init(self) -> None:
        logger.warning("No OpenAI API key configured, using deterministic stub client")

    async def close(self) -> None:
        pass

    async def summarize(self, text: str, level: SkillLevel, subject: str | None = None) -> SummaryItem:
        """Generate deterministic stub summary."""
        sentences = _sentences(text)
        lead = " ".join(sentences[:2]) if sentences else text.strip()
        return SummaryItem(text=f"({level.value} summary) {lead}")

    async def generate_study_guide_section(
        self, text: str, level: SkillLevel, subject: str | None, index: int, total: int
    ) -> StudyGuideSection:
        """Generate deterministic stub study guide section."""
        points = _sentences(text)[:5] or [text.strip()]
        body = "\n".join(f"- {p}" for p in points)
        return StudyGuideSection(index=index, total=total, text=f"Key points ({level.value}):\n{body}")

    async def generate_concept_review(
        self, sections: list[str], level: SkillLevel, subject: str | None = None
    ) -> ConceptReview:
        """Generate deterministic stub concept review."""
        firsts = [(_sentences(s) or [s.strip()])[0] for s in sections if s.strip()]
        review = "\n".join(f"{i + 1}. {line}" for i, line in enumerate(firsts)) or "No concepts found."
        return ConceptReview(text=review)

    async def generate_quiz_section(
        self,
        text: str,
        quota: int,
        question_format: QuestionFormat,
        level: SkillLevel,
        subject: str | None,
        section_index: int,
        section_total: int,
    ) -> list[QuizQuestion]:
        """Generate exactly `quota` deterministic stub questions."""
        sentences = _sentences(text) or [text.strip() or "This section"]
        questions = []
        for i in range(quota):
            fact = sentences[i % len(sentences)]
            label = f"section {section_index + 1}, question {i + 1}"
            if question_format == QuestionFormat.multiple_choice:
                questions.append(
                    QuizQuestion(
                        format=question_format,
                        prompt=f"Which statement is made in {label}?",
                        options=[
                            fact,
                            f"The text does not discuss this ({label})",
                            f"The opposite of the statement in {label}",
                            f"None of the above ({label})",
                        ],
                        correct_answer="A",
                        explanation=f"The section states: {fact}",
                    )
                )
            elif question_format == QuestionFormat.fill_in_blank:
                words = fact.split()
                answer = max(words, key=len).strip(".,;:!?\"'()") or words[0]
                questions.append(
                    QuizQuestion(
                        format=question_format,
                        prompt=fact.replace(answer, "_____", 1),
                        correct_answer=answer,
                        explanation=f"The section states: {fact}",
                    )
                )
            else:
                questions.append(
                    QuizQuestion(
                        format=question_format,
                        prompt=f"Explain the following idea from {label}: {fact}",
                        correct_answer=fact,
                        explanation=f"A good answer restates and justifies: {fact}",
                    )
                )
        return questions

    async def explain(
        self, question: QuizQuestion, context: str, level: SkillLevel, subject: str | None = None
    ) -> Explanation:
        """Generate deterministic stub explanation."""
        return Explanation(
            steps=[
                f"Read the question: {question.prompt}",
                f"The correct answer is {_answer_text(question)}",
                question.explanation,
            ],
            concepts_used=[],
            additional_notes=f"Stub explanation ({level.value}).",
        )

    async def rewrite_for_level(
        self,
        payload: Any,
        content_type: ContentType,
        from_level: SkillLevel,
        to_level: SkillLevel,
        preserve_core: bool = True,
        subject: str | None = None,
    ) -> Any:
        """Return the payload unchanged (the stub cannot rewrite)."""
        return payload


def create_generation_client(
    settings: Settings,
    *,
    metrics: GenerationMetrics | None = None,
    structured_logger: GenerationLogger | None = None,
) -> GenerationClient:
    """Factory function to get appropriate generation client based on config.

    Returns:
        OpenAIGenerationClient if API key is configured, DeterministicStubClient otherwise
    """
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for generation")
        return OpenAIGenerationClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeouts=timeouts_from_settings(settings),
            max_concurrency=settings.llm_max_concurrency,
            metrics=metrics,
            structured_logger=structured_logger,
        )
    else:
        return DeterministicStubClient()
