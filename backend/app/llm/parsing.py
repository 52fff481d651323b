"""Model response parsing - JSON extraction and schema validation."""

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from backend.app.errors import GenerationError, GenerationErrorKind
from backend.app.models.common import QuestionFormat
from backend.app.models.items import QuizQuestion

M = TypeVar("M", bound=BaseModel)

_FENCE_OPEN = re.compile(r"^\s*```[a-zA-Z]*\s*", re.MULTILINE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$", re.MULTILINE)


def strip_code_fences(text: str) -> str:
    """Remove markdown code block markers around a JSON payload."""
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def extract_json_object(text: str, *, content_kind: str | None = None) -> Any:
    """Decode the first JSON value in a model response.

    Tries the whole (fence-stripped) text first, then the first object or array
    found inside surrounding prose.

    Raises:
        GenerationError: PARSE_FAILURE if no JSON value can be decoded
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise GenerationError(GenerationErrorKind.PARSE_FAILURE, "empty response", content_kind=content_kind)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    for opener in ("{", "["):
        idx = cleaned.find(opener)
        if idx == -1:
            continue
        try:
            value, _ = decoder.raw_decode(cleaned, idx)
            return value
        except json.JSONDecodeError:
            continue

    raise GenerationError(
        GenerationErrorKind.PARSE_FAILURE,
        f"no JSON object in response ({len(cleaned)} chars)",
        content_kind=content_kind,
    )


def parse_item(text: str, model_cls: type[M], *, content_kind: str | None = None) -> M:
    """Decode and validate a single-object response against model_cls.

    Raises:
        GenerationError: PARSE_FAILURE on malformed JSON or schema mismatch
    """
    data = extract_json_object(text, content_kind=content_kind)
    return validate_item(data, model_cls, content_kind=content_kind)


def validate_item(data: Any, model_cls: type[M], *, content_kind: str | None = None) -> M:
    """Validate already-decoded data against model_cls."""
    if not isinstance(data, dict):
        raise GenerationError(
            GenerationErrorKind.PARSE_FAILURE,
            f"expected a JSON object, got {type(data).__name__}",
            content_kind=content_kind,
        )
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise GenerationError(
            GenerationErrorKind.PARSE_FAILURE,
            f"{model_cls.__name__} failed validation: {e.error_count()} error(s)",
            content_kind=content_kind,
        ) from e


def parse_questions(
    text: str, question_format: QuestionFormat, *, content_kind: str | None = None
) -> list[QuizQuestion]:
    """Decode a {"questions": [...]} response into validated questions.

    Every question is validated with the requested format; one invalid question
    fails the whole response so the caller retries the section.

    Raises:
        GenerationError: PARSE_FAILURE on malformed JSON or any invalid question
    """
    data = extract_json_object(text, content_kind=content_kind)
    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        raise GenerationError(
            GenerationErrorKind.PARSE_FAILURE,
            'response has no "questions" array',
            content_kind=content_kind,
        )

    questions: list[QuizQuestion] = []
    for i, raw in enumerate(data):
        if not isinstance(raw, dict):
            raise GenerationError(
                GenerationErrorKind.PARSE_FAILURE,
                f"question {i + 1} is not an object",
                content_kind=content_kind,
            )
        try:
            questions.append(
                QuizQuestion.model_validate({**raw, "kind": "quiz_question", "format": question_format})
            )
        except ValidationError as e:
            raise GenerationError(
                GenerationErrorKind.PARSE_FAILURE,
                f"question {i + 1} failed validation: {e.errors()[0]['msg']}",
                content_kind=content_kind,
            ) from e
    return questions
