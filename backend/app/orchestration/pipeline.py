"""Study material pipeline - chunk, generate, aggregate, adjust.

One run drives a single MaterialRequest through its sub-pipeline:
- summary: chunk -> summarise each chunk -> join -> optional adjustment
- study_guide: chunk -> sections in parallel -> concept review -> optional
  per-section adjustment -> render
- practice_quiz: quotas -> sections -> per-section exact-count generation ->
  optional explanations -> optional per-question adjustment -> render
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from backend.app.config import Settings
from backend.app.docs.boundary import trim_boilerplate
from backend.app.docs.chunker import chunk_text
from backend.app.docs.sections import assign_quotas, plan_sections
from backend.app.errors import (
    GenerationCancelledError,
    InputError,
    PipelineError,
    RetryExhaustedError,
    SectionGenerationError,
)
from backend.app.generation.difficulty import adjust_or_keep
from backend.app.generation.retry import (
    CancelToken,
    GenerationLogger,
    GenerationMetrics,
    RetryPolicy,
    retry_async,
)
from backend.app.generation.sections import generate_section_with_retry, is_retryable_generation_error
from backend.app.llm.client import GenerationClient
from backend.app.models.common import ContentKind, ContentType, MaterialType, QuestionFormat, SkillLevel, parse_enum
from backend.app.models.items import QuizQuestion, StudyGuideSection, SummaryItem
from backend.app.models.material import MaterialRequest, MaterialResult
from backend.app.orchestration import render
from backend.app.orchestration.state import PipelineState

T = TypeVar("T")

logger = logging.getLogger(__name__)

MATERIAL_TYPE_ALIASES = {"guide": "study_guide", "quiz": "practice_quiz"}
QUESTION_FORMAT_ALIASES = {
    "mcq": "multiple_choice",
    "fill_in_the_blank": "fill_in_blank",
    "fill_in_blanks": "fill_in_blank",
}


@dataclass(frozen=True)
class PipelineConfig:
    """Orchestrator tuning, usually built from Settings."""

    summary_chunk_size: int = 2000
    summary_chunk_overlap: int = 200
    study_guide_chunk_size: int = 4000
    study_guide_chunk_overlap: int = 400
    study_guide_max_workers: int = 4
    quiz_section_count: int = 3
    default_question_count: int = 10
    max_questions: int = 30
    max_document_chars: int = 60_000
    trim_boilerplate: bool = False
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            summary_chunk_size=settings.summary_chunk_size,
            summary_chunk_overlap=settings.summary_chunk_overlap,
            study_guide_chunk_size=settings.study_guide_chunk_size,
            study_guide_chunk_overlap=settings.study_guide_chunk_overlap,
            study_guide_max_workers=settings.study_guide_max_workers,
            quiz_section_count=settings.quiz_section_count,
            default_question_count=settings.default_question_count,
            max_questions=settings.max_questions,
            max_document_chars=settings.max_document_chars,
            trim_boilerplate=settings.trim_boilerplate,
            retry_policy=RetryPolicy(
                max_attempts=settings.generation_max_attempts,
                backoff_initial_ms=settings.retry_backoff_initial_ms,
                backoff_multiplier=settings.retry_backoff_multiplier,
                backoff_max_ms=settings.retry_backoff_max_ms,
                jitter_ms=settings.retry_jitter_ms,
            ),
        )


def _parse_field(enum_cls: Any, value: str, field_name: str, aliases: dict[str, str] | None = None) -> Any:
    try:
        return parse_enum(enum_cls, value, aliases=aliases)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InputError(f"Invalid {field_name} {value!r} (expected one of: {allowed})") from e


def build_material_request(
    *,
    document_text: str,
    material_type: str,
    subject: str | None = None,
    complexity: str | None = None,
    skill_level: str | None = None,
    target_skill_level: str | None = None,
    number_of_questions: int | None = None,
    question_format: str | None = None,
    include_explanations: bool = False,
) -> MaterialRequest:
    """Build a validated MaterialRequest from API fields.

    Generation level is `complexity` if given, else `skill_level`, else
    intermediate. The adjustment target is `target_skill_level` if given, else
    `skill_level` when `complexity` was also given and differs from it.

    Raises:
        InputError: Unknown material type, skill level, or question format
    """
    mt = _parse_field(MaterialType, material_type, "material type", MATERIAL_TYPE_ALIASES)

    complexity_level = _parse_field(SkillLevel, complexity, "complexity") if complexity else None
    learner_level = _parse_field(SkillLevel, skill_level, "skill level") if skill_level else None
    level = complexity_level or learner_level or SkillLevel.intermediate

    if target_skill_level:
        target = _parse_field(SkillLevel, target_skill_level, "target skill level")
    elif complexity_level and learner_level and learner_level != complexity_level:
        target = learner_level
    else:
        target = None

    fmt = QuestionFormat.multiple_choice
    if question_format:
        fmt = _parse_field(QuestionFormat, question_format, "question format", QUESTION_FORMAT_ALIASES)

    return MaterialRequest(
        document_text=document_text,
        material_type=mt,
        skill_level=level,
        target_level=target,
        subject=subject.strip() if subject and subject.strip() else None,
        number_of_questions=number_of_questions,
        question_format=fmt,
        include_explanations=include_explanations,
    )


class StudyMaterialPipeline:
    """Orchestrates one material request from text to rendered content."""

    def __init__(
        self,
        client: GenerationClient,
        config: PipelineConfig | None = None,
        metrics: GenerationMetrics | None = None,
        *,
        structured_logger: GenerationLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            client: Generation client (shared, owned by the caller)
            config: Orchestrator tuning (defaults if omitted)
            metrics: Metrics recorder (optional, defaults to no-op)
            structured_logger: Structured logger (optional, defaults to no-op)
            sleep_fn: Injectable sleep for retry backoff (default: asyncio.sleep)
        """
        self.client = client
        self.config = config or PipelineConfig()
        self.metrics = metrics or GenerationMetrics()
        self._logger = structured_logger or GenerationLogger()
        self._sleep = sleep_fn
        # State of the most recent run, for inspection
        self.last_state: PipelineState | None = None

    async def run(self, request: MaterialRequest, cancel_token: CancelToken | None = None) -> MaterialResult:
        """Run the sub-pipeline for request.material_type.

        Raises:
            InputError: Invalid input (no model call is made)
            PipelineError: A unit failed; the originating error is its __cause__
            GenerationCancelledError: The cancel token was set
        """
        mt = request.material_type.value
        state = PipelineState(material_type=mt)
        self.last_state = state
        token = cancel_token or CancelToken()

        try:
            text, truncated = self._prepare_text(request)
            logger.info(f"Pipeline run started: {mt} ({len(text)} chars, level={request.skill_level.value})")

            if request.material_type == MaterialType.summary:
                result = await self._run_summary(request, text, state, token)
            elif request.material_type == MaterialType.study_guide:
                result = await self._run_study_guide(request, text, state, token)
            else:
                result = await self._run_quiz(request, text, state, token)
        except InputError as e:
            state.fail(e)
            self.metrics.inc_pipeline_run(mt, "invalid")
            raise
        except (GenerationCancelledError, asyncio.CancelledError) as e:
            state.fail(e)
            self.metrics.inc_pipeline_run(mt, "cancelled")
            logger.info(f"Pipeline run cancelled: {mt}")
            raise
        except PipelineError as e:
            state.fail(e, e.unit)
            self.metrics.inc_pipeline_run(mt, "failed")
            logger.error(f"Pipeline run failed: {e.user_message()}")
            raise
        except Exception as e:
            state.fail(e)
            self.metrics.inc_pipeline_run(mt, "failed")
            raise

        state.advance("done")
        self.metrics.inc_pipeline_run(mt, "success")
        logger.info(f"Pipeline run finished: {mt} ({len(result.items)} items, adjusted={result.adjusted})")
        return result.model_copy(update={"truncated": truncated})

    def _prepare_text(self, request: MaterialRequest) -> tuple[str, bool]:
        text = request.document_text
        if not text or not text.strip():
            raise InputError("Document text is empty")

        if self.config.trim_boilerplate:
            text, trimmed = trim_boilerplate(text)
            if trimmed:
                logger.info("Trimmed trailing boilerplate from document")

        truncated = False
        if len(text) > self.config.max_document_chars:
            logger.warning(
                f"Document truncated from {len(text)} to {self.config.max_document_chars} chars"
            )
            text = text[: self.config.max_document_chars]
            truncated = True
        return text, truncated

    async def _with_retry(
        self,
        request: MaterialRequest,
        kind: ContentKind,
        operation: Callable[[int], Awaitable[T]],
        unit: str,
        token: CancelToken,
    ) -> T:
        """Run one unit with bounded retry; exhaustion becomes a PipelineError."""

        def on_retry(attempt: int, error: BaseException) -> None:
            self.metrics.inc_retry(kind.value)
            self._logger.log_retry(kind.value, attempt, type(error).__name__)
            logger.warning(f"{unit} attempt {attempt} failed, retrying: {error}")

        try:
            return await retry_async(
                operation,
                self.config.retry_policy,
                is_retryable=is_retryable_generation_error,
                cancel_token=token,
                sleep_fn=self._sleep,
                on_retry=on_retry,
            )
        except RetryExhaustedError as e:
            raise PipelineError(
                request.material_type.value,
                f"{e.last_error} (after {e.attempts} attempt(s))",
                unit=unit,
            ) from e.last_error

    async def _adjust(
        self,
        request: MaterialRequest,
        target: SkillLevel,
        content: Any,
        content_type: ContentType,
        unit: str,
        token: CancelToken,
    ) -> tuple[Any, bool]:
        async def attempt(_: int) -> tuple[Any, bool]:
            return await adjust_or_keep(
                self.client,
                content,
                content_type,
                request.skill_level,
                target,
                True,
                request.subject,
                metrics=self.metrics,
            )

        return await self._with_retry(request, ContentKind.difficulty, attempt, f"adjust {unit}", token)

    async def _run_summary(
        self, request: MaterialRequest, text: str, state: PipelineState, token: CancelToken
    ) -> MaterialResult:
        cfg = self.config
        state.advance("chunking")
        chunks = chunk_text(text, cfg.summary_chunk_size, cfg.summary_chunk_overlap)
        if not chunks:
            raise InputError("Document text is empty")
        state.units_total = len(chunks)

        state.advance("generating")
        items: list[SummaryItem] = []
        for chunk in chunks:
            token.throw_if_cancelled()

            async def summarize(_: int, body: str = chunk.text) -> SummaryItem:
                return await self.client.summarize(body, request.skill_level, request.subject)

            unit = f"chunk {chunk.order + 1} of {len(chunks)}"
            items.append(await self._with_retry(request, ContentKind.summary, summarize, unit, token))
            state.units_done += 1

        state.advance("aggregating")
        content = render.render_summary(items)

        adjusted = False
        fallbacks = 0
        target = request.adjustment_target
        if target is not None:
            state.advance("adjusting_difficulty")
            token.throw_if_cancelled()
            content, adjusted = await self._adjust(
                request, target, content, ContentType.summary, "summary", token
            )
            if adjusted:
                items = [SummaryItem(text=content)]
            else:
                fallbacks = 1

        return MaterialResult(
            material_type=request.material_type,
            content=content,
            items=list(items),
            adjusted=adjusted,
            fallbacks=fallbacks,
        )

    async def _run_study_guide(
        self, request: MaterialRequest, text: str, state: PipelineState, token: CancelToken
    ) -> MaterialResult:
        cfg = self.config
        state.advance("chunking")
        chunks = chunk_text(text, cfg.study_guide_chunk_size, cfg.study_guide_chunk_overlap)
        if not chunks:
            raise InputError("Document text is empty")
        total = len(chunks)
        state.units_total = total

        state.advance("generating")
        workers = asyncio.Semaphore(max(1, cfg.study_guide_max_workers))

        async def generate(chunk_order: int, chunk_body: str) -> StudyGuideSection:
            async with workers:
                token.throw_if_cancelled()

                async def attempt(_: int) -> StudyGuideSection:
                    return await self.client.generate_study_guide_section(
                        chunk_body, request.skill_level, request.subject, chunk_order, total
                    )

                section = await self._with_retry(
                    request, ContentKind.study_guide, attempt, f"chunk {chunk_order + 1} of {total}", token
                )
                state.units_done += 1
                return section

        tasks = [asyncio.create_task(generate(c.order, c.text)) for c in chunks]
        try:
            sections = list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        sections.sort(key=lambda s: s.index)

        token.throw_if_cancelled()

        async def review_attempt(_: int) -> Any:
            return await self.client.generate_concept_review(
                [s.text for s in sections], request.skill_level, request.subject
            )

        review = await self._with_retry(
            request, ContentKind.concept_review, review_attempt, "concept review", token
        )

        state.advance("aggregating")
        adjusted = False
        fallbacks = 0
        target = request.adjustment_target
        if target is not None:
            state.advance("adjusting_difficulty")
            rewritten: list[StudyGuideSection] = []
            for section in sections:
                token.throw_if_cancelled()
                unit = f"section {section.index + 1} of {total}"
                body, ok = await self._adjust(request, target, section.text, ContentType.summary, unit, token)
                rewritten.append(section.model_copy(update={"text": body}))
                adjusted = adjusted or ok
                fallbacks += 0 if ok else 1
            sections = rewritten

        level = target if adjusted and target is not None else request.skill_level
        content = render.render_study_guide(sections, review, level, request.subject)
        return MaterialResult(
            material_type=request.material_type,
            content=content,
            items=[*sections, review],
            adjusted=adjusted,
            fallbacks=fallbacks,
        )

    async def _run_quiz(
        self, request: MaterialRequest, text: str, state: PipelineState, token: CancelToken
    ) -> MaterialResult:
        cfg = self.config
        total_questions = request.number_of_questions
        if total_questions is None:
            total_questions = cfg.default_question_count
        if not 1 <= total_questions <= cfg.max_questions:
            raise InputError(f"numberOfQuestions must be between 1 and {cfg.max_questions}")

        state.advance("chunking")
        sections = assign_quotas(plan_sections(text, cfg.quiz_section_count), total_questions)
        if not sections:
            raise InputError("Document text is empty")
        state.units_total = len(sections)
        logger.info(f"Quiz quotas over {len(sections)} section(s): {[s.quota for s in sections]}")

        state.advance("generating")
        questions: list[QuizQuestion] = []
        contexts: list[str] = []
        for section in sections:
            token.throw_if_cancelled()
            try:
                generated = await generate_section_with_retry(
                    self.client,
                    section,
                    section.quota,
                    section_total=len(sections),
                    question_format=request.question_format,
                    level=request.skill_level,
                    subject=request.subject,
                    policy=cfg.retry_policy,
                    cancel_token=token,
                    sleep_fn=self._sleep,
                    metrics=self.metrics,
                    structured_logger=self._logger,
                )
            except SectionGenerationError as e:
                raise PipelineError(
                    request.material_type.value,
                    str(e),
                    unit=f"section {section.index + 1} of {len(sections)}",
                ) from e
            questions.extend(generated)
            contexts.extend([section.text] * len(generated))
            state.units_done += 1

        if request.include_explanations:
            questions = await self._explain_all(request, questions, contexts, token)

        state.advance("aggregating")
        if len(questions) != total_questions:
            raise PipelineError(
                request.material_type.value,
                f"expected {total_questions} questions, assembled {len(questions)}",
            )

        adjusted = False
        fallbacks = 0
        target = request.adjustment_target
        if target is not None:
            state.advance("adjusting_difficulty")
            rewritten: list[QuizQuestion] = []
            for i, question in enumerate(questions):
                token.throw_if_cancelled()
                unit = f"question {i + 1}"
                new_question, ok = await self._adjust(
                    request, target, question, ContentType.question, unit, token
                )
                adjusted = adjusted or ok
                fallbacks += 0 if ok else 1
                if new_question.detailed_explanation is not None:
                    detail, detail_ok = await self._adjust(
                        request, target, new_question.detailed_explanation, ContentType.explanation, unit, token
                    )
                    new_question = new_question.model_copy(update={"detailed_explanation": detail})
                    adjusted = adjusted or detail_ok
                    fallbacks += 0 if detail_ok else 1
                rewritten.append(new_question)
            questions = rewritten

        return MaterialResult(
            material_type=request.material_type,
            content=render.render_quiz(questions, request.subject),
            items=list(questions),
            adjusted=adjusted,
            fallbacks=fallbacks,
        )

    async def _explain_all(
        self,
        request: MaterialRequest,
        questions: list[QuizQuestion],
        contexts: list[str],
        token: CancelToken,
    ) -> list[QuizQuestion]:
        explained: list[QuizQuestion] = []
        for i, (question, context) in enumerate(zip(questions, contexts)):
            token.throw_if_cancelled()

            async def attempt(_: int, q: QuizQuestion = question, ctx: str = context) -> Any:
                return await self.client.explain(q, ctx, request.skill_level, request.subject)

            detail = await self._with_retry(
                request, ContentKind.explanation, attempt, f"explanation {i + 1}", token
            )
            explained.append(question.model_copy(update={"detailed_explanation": detail}))
        return explained
