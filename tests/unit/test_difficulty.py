"""Unit tests for difficulty adjustment."""

from unittest.mock import MagicMock

import pytest

from backend.app.errors import ContentValidationError, GenerationError, GenerationErrorKind, InputError
from backend.app.generation.difficulty import adjust, adjust_or_keep, validate_adjusted
from backend.app.models.common import ContentType, QuestionFormat, SkillLevel
from backend.app.models.items import Explanation, QuizQuestion

BEGINNER = SkillLevel.beginner
ADVANCED = SkillLevel.advanced


def rewritten_question(**overrides) -> dict:
    data = {
        "question": "Which organelle performs oxidative phosphorylation?",
        "options": ["Mitochondrion", "Nucleus", "Ribosome", "Lysosome"],
        "correctAnswer": "A",
        "explanation": "The electron transport chain sits in the inner mitochondrial membrane.",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_same_level_returns_content_without_calling_model(scripted_client) -> None:
    client = scripted_client()

    result = await adjust(client, "Plain summary.", ContentType.summary, BEGINNER, BEGINNER)

    assert result == "Plain summary."
    assert client.calls == []


@pytest.mark.asyncio
async def test_question_rewrite_is_validated_and_typed(scripted_client, question_factory) -> None:
    original = question_factory(1)[0]
    client = scripted_client(rewrite_for_level=[rewritten_question()])

    result = await adjust(client, original, ContentType.question, BEGINNER, ADVANCED, subject="Biology")

    assert isinstance(result, QuizQuestion)
    assert result.prompt.startswith("Which organelle")
    call = client.calls_to("rewrite_for_level")[0]
    assert call["payload"] == original.to_prompt_payload()
    assert call["from_level"] == BEGINNER
    assert call["to_level"] == ADVANCED
    assert call["subject"] == "Biology"


@pytest.mark.asyncio
async def test_question_keeps_detailed_explanation(scripted_client, question_factory) -> None:
    detail = Explanation(steps=["Recall the definition."])
    original = question_factory(1)[0].model_copy(update={"detailed_explanation": detail})
    client = scripted_client(rewrite_for_level=[rewritten_question()])

    result = await adjust(client, original, ContentType.question, BEGINNER, ADVANCED)

    assert result.detailed_explanation == detail


@pytest.mark.asyncio
async def test_missing_required_field_is_content_validation_error(scripted_client, question_factory) -> None:
    broken = rewritten_question()
    del broken["options"]
    client = scripted_client(rewrite_for_level=[broken])

    with pytest.raises(ContentValidationError, match="missing required fields"):
        await adjust(client, question_factory(1)[0], ContentType.question, BEGINNER, ADVANCED)


@pytest.mark.asyncio
async def test_adjust_or_keep_falls_back_to_original(scripted_client, question_factory) -> None:
    original = question_factory(1)[0]
    client = scripted_client(rewrite_for_level=[{"question": "only a question"}])
    metrics = MagicMock()

    content, adjusted = await adjust_or_keep(
        client, original, ContentType.question, BEGINNER, ADVANCED, metrics=metrics
    )

    assert content is original
    assert adjusted is False
    metrics.inc_difficulty_fallback.assert_called_once_with("question")


@pytest.mark.asyncio
async def test_adjust_or_keep_reports_success(scripted_client) -> None:
    client = scripted_client(rewrite_for_level=[{"summary": "Harder summary."}])

    content, adjusted = await adjust_or_keep(client, "Easy summary.", ContentType.summary, BEGINNER, ADVANCED)

    assert content == "Harder summary."
    assert adjusted is True


@pytest.mark.asyncio
async def test_generation_errors_propagate(scripted_client) -> None:
    client = scripted_client(
        rewrite_for_level=[GenerationError(GenerationErrorKind.MODEL_ERROR, "API error: overloaded")]
    )

    with pytest.raises(GenerationError):
        await adjust_or_keep(client, "Summary.", ContentType.summary, BEGINNER, ADVANCED)


@pytest.mark.asyncio
async def test_dict_input_returns_dict(scripted_client) -> None:
    client = scripted_client(rewrite_for_level=[rewritten_question()])

    result = await adjust(
        client, rewritten_question(question="Original?"), ContentType.question, ADVANCED, BEGINNER
    )

    assert isinstance(result, dict)
    assert result["question"].startswith("Which organelle")
    assert result["correctAnswer"] == "A"
    assert result["format"] == "multiple_choice"


@pytest.mark.asyncio
async def test_explanation_rewrite(scripted_client) -> None:
    client = scripted_client(rewrite_for_level=[{"steps": ["Simpler step."], "conceptsUsed": ["energy"]}])
    original = Explanation(steps=["Dense step one.", "Dense step two."])

    result = await adjust(client, original, ContentType.explanation, ADVANCED, BEGINNER)

    assert isinstance(result, Explanation)
    assert result.steps == ["Simpler step."]
    assert result.concepts_used == ["energy"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("content", "content_type"),
    [
        ("", ContentType.summary),
        ({"question": "no options"}, ContentType.question),
        ({"steps": []}, ContentType.explanation),
    ],
)
async def test_malformed_input_is_input_error(scripted_client, content, content_type) -> None:
    client = scripted_client()

    with pytest.raises(InputError):
        await adjust(client, content, content_type, BEGINNER, ADVANCED)

    assert client.calls == []


class TestValidateAdjusted:
    """Test validate_adjusted()."""

    @pytest.mark.parametrize(
        "data",
        [" New summary. ", {"content": "New summary."}, {"summary": "New summary."}, {"text": "New summary."}],
    )
    def test_summary_shapes(self, data) -> None:
        assert validate_adjusted(data, ContentType.summary, "Old.") == "New summary."

    @pytest.mark.parametrize("data", ["", {"title": "x"}, ["New summary."], None])
    def test_invalid_summary(self, data) -> None:
        with pytest.raises(ContentValidationError):
            validate_adjusted(data, ContentType.summary, "Old.")

    def test_format_change_is_rejected(self, question_factory) -> None:
        original = question_factory(1)[0]

        with pytest.raises(ContentValidationError, match="changed format"):
            validate_adjusted(rewritten_question(format="open_ended"), ContentType.question, original)

    def test_same_format_label_is_accepted(self, question_factory) -> None:
        original = question_factory(1)[0]

        result = validate_adjusted(
            rewritten_question(format="multiple_choice"), ContentType.question, original
        )

        assert result.format == QuestionFormat.multiple_choice

    def test_non_object_question(self, question_factory) -> None:
        with pytest.raises(ContentValidationError, match="not an object"):
            validate_adjusted("text", ContentType.question, question_factory(1)[0])
