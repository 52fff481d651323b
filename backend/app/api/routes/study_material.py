"""Study material endpoints.

POST /study-material          generate a summary, study guide, or practice quiz
POST /study-material/adjust   rewrite one item for another skill level
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from backend.app.api.deps import get_app_settings, get_generation_client
from backend.app.config import Settings
from backend.app.errors import (
    GenerationCancelledError,
    InputError,
    PipelineError,
    RetryExhaustedError,
)
from backend.app.generation.difficulty import adjust_or_keep
from backend.app.generation.retry import CancelToken, retry_async
from backend.app.generation.sections import is_retryable_generation_error
from backend.app.llm.client import GenerationClient
from backend.app.models.common import ContentType, SkillLevel, parse_enum
from backend.app.models.material import (
    AdjustDifficultyRequest,
    AdjustDifficultyResponse,
    StudyMaterialRequest,
    StudyMaterialResponse,
)
from backend.app.orchestration.pipeline import PipelineConfig, StudyMaterialPipeline, build_material_request
from backend.app.utils.logging import StructuredGenerationLogger
from backend.app.utils.metrics import PrometheusGenerationMetrics

logger = logging.getLogger(__name__)

router = APIRouter()

# How often the disconnect watcher polls the client connection (seconds)
DISCONNECT_POLL_SECONDS = 0.5


def get_pipeline(
    client: GenerationClient = Depends(get_generation_client),
    settings: Settings = Depends(get_app_settings),
) -> StudyMaterialPipeline:
    """Fresh pipeline per request around the shared client."""
    return StudyMaterialPipeline(
        client,
        PipelineConfig.from_settings(settings),
        PrometheusGenerationMetrics(),
        structured_logger=StructuredGenerationLogger(),
    )


def error_response(status_code: int, message: str) -> JSONResponse:
    """Error envelope shared by every study material error."""
    body = StudyMaterialResponse(success=False, error=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def _cancel_on_disconnect(request: Request, task: asyncio.Task[Any], token: CancelToken) -> None:
    """Cancel the pipeline run when the client goes away."""
    while not task.done():
        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling study material generation")
            token.cancel()
            task.cancel()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@router.post(
    "/study-material",
    response_model=StudyMaterialResponse,
    response_model_exclude_none=True,
    responses={400: {}, 413: {}, 499: {}, 500: {}, 504: {}},
)
async def create_study_material(
    body: StudyMaterialRequest,
    request: Request,
    pipeline: StudyMaterialPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_app_settings),
) -> StudyMaterialResponse | JSONResponse:
    """Generate study material from extracted document text.

    Returns:
        200 with rendered content on success
        400 for invalid input, 500 when generation fails,
        504 when the request deadline passes, 499 when the client disconnects
    """
    try:
        material_request = build_material_request(
            document_text=body.document_text,
            material_type=body.material_type,
            subject=body.subject,
            complexity=body.complexity,
            skill_level=body.skill_level,
            target_skill_level=body.target_skill_level,
            number_of_questions=body.number_of_questions,
            question_format=body.question_format,
            include_explanations=body.include_explanations,
        )
    except InputError as e:
        return error_response(400, str(e))

    token = CancelToken()
    task = asyncio.create_task(pipeline.run(material_request, token))
    watcher = asyncio.create_task(_cancel_on_disconnect(request, task, token))
    try:
        result = await asyncio.wait_for(task, timeout=settings.request_timeout_seconds)
    except InputError as e:
        return error_response(400, str(e))
    except PipelineError as e:
        return error_response(500, e.user_message())
    except TimeoutError:
        logger.error(
            f"Study material generation exceeded {settings.request_timeout_seconds:g}s "
            f"({material_request.material_type.value})"
        )
        return error_response(504, "Study material generation timed out")
    except (GenerationCancelledError, asyncio.CancelledError):
        if not token.cancelled:
            raise
        return error_response(499, "Client closed request")
    finally:
        watcher.cancel()

    return StudyMaterialResponse(success=True, content=result.content, truncated=result.truncated)


@router.post(
    "/study-material/adjust",
    response_model=AdjustDifficultyResponse,
    response_model_exclude_none=True,
    responses={400: {}, 500: {}, 504: {}},
)
async def adjust_difficulty(
    body: AdjustDifficultyRequest,
    client: GenerationClient = Depends(get_generation_client),
    settings: Settings = Depends(get_app_settings),
) -> AdjustDifficultyResponse | JSONResponse:
    """Rewrite a question, explanation, or summary for another skill level.

    Falls back to the original content (adjusted=false) when the rewrite
    breaks the content's structure.
    """
    try:
        content_type = parse_enum(ContentType, body.content_type)
        from_level = parse_enum(SkillLevel, body.from_level)
        to_level = parse_enum(SkillLevel, body.to_level)
    except ValueError as e:
        return error_response(400, f"Invalid adjustment request: {e}")

    metrics = PrometheusGenerationMetrics()
    policy = PipelineConfig.from_settings(settings).retry_policy

    async def attempt(_: int) -> tuple[Any, bool]:
        return await adjust_or_keep(
            client,
            body.content,
            content_type,
            from_level,
            to_level,
            body.preserve_core,
            body.subject,
            metrics=metrics,
        )

    try:
        content, adjusted = await asyncio.wait_for(
            retry_async(attempt, policy, is_retryable=is_retryable_generation_error),
            timeout=settings.request_timeout_seconds,
        )
    except InputError as e:
        return error_response(400, str(e))
    except RetryExhaustedError as e:
        return error_response(500, f"Failed to adjust difficulty: {e.last_error}")
    except TimeoutError:
        return error_response(504, "Difficulty adjustment timed out")

    if hasattr(content, "to_prompt_payload"):
        content = content.to_prompt_payload()
    return AdjustDifficultyResponse(success=True, content=content, adjusted=adjusted)
