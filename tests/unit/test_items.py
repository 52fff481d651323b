"""Unit tests for generated item models."""

import pytest
from pydantic import TypeAdapter, ValidationError

from backend.app.models.common import QuestionFormat
from backend.app.models.items import (
    Explanation,
    GeneratedItem,
    QuizQuestion,
    StudyGuideSection,
    SummaryItem,
)

OPTIONS = ["Mitochondria", "Nucleus", "Ribosome", "Golgi apparatus"]


def mcq(**overrides) -> dict:
    data = {
        "question": "Which organelle produces ATP?",
        "options": list(OPTIONS),
        "correctAnswer": "A",
        "explanation": "Mitochondria run cellular respiration.",
    }
    data.update(overrides)
    return data


class TestMultipleChoice:
    """Test multiple-choice invariants."""

    def test_valid_question_from_model_json(self) -> None:
        question = QuizQuestion.model_validate(mcq())

        assert question.prompt == "Which organelle produces ATP?"
        assert question.options == OPTIONS
        assert question.correct_answer == "A"
        assert question.correct_index == 0

    @pytest.mark.parametrize(
        ("answer", "letter"),
        [("b", "B"), ("C)", "C"), ("Option D", "D"), ("Ribosome", "C"), ("2", "C"), (1, "B")],
    )
    def test_answer_forms_normalise_to_letter(self, answer, letter: str) -> None:
        question = QuizQuestion.model_validate(mcq(correctAnswer=answer))

        assert question.correct_answer == letter

    def test_letter_prefixes_are_stripped_from_options(self) -> None:
        prefixed = [f"{letter}. {text}" for letter, text in zip("ABCD", OPTIONS)]

        question = QuizQuestion.model_validate(mcq(options=prefixed, correctAnswer="B. Nucleus"))

        assert question.options == OPTIONS
        assert question.correct_answer == "B"

    def test_requires_four_options(self) -> None:
        with pytest.raises(ValidationError, match="needs 4 options"):
            QuizQuestion.model_validate(mcq(options=OPTIONS[:3]))

    def test_missing_options_rejected(self) -> None:
        data = mcq()
        del data["options"]

        with pytest.raises(ValidationError):
            QuizQuestion.model_validate(data)

    def test_duplicate_options_rejected(self) -> None:
        with pytest.raises(ValidationError, match="distinct"):
            QuizQuestion.model_validate(mcq(options=["Same", "same", "Other", "Another"]))

    def test_answer_must_identify_an_option(self) -> None:
        with pytest.raises(ValidationError, match="does not identify"):
            QuizQuestion.model_validate(mcq(correctAnswer="Chloroplast"))

    def test_missing_explanation_rejected(self) -> None:
        with pytest.raises(ValidationError):
            QuizQuestion.model_validate(mcq(explanation=""))


class TestOtherFormats:
    """Test open-ended and fill-in-the-blank questions."""

    def test_open_ended_uses_model_answer_and_key_points(self) -> None:
        question = QuizQuestion.model_validate(
            {
                "format": "open_ended",
                "question": "Why do cells need ATP?",
                "modelAnswer": "ATP stores usable chemical energy.",
                "keyPoints": ["energy currency", "phosphate bonds"],
            }
        )

        assert question.correct_answer == "ATP stores usable chemical energy."
        assert question.explanation == "energy currency\nphosphate bonds"
        assert question.options is None
        assert question.correct_index is None

    def test_fill_in_blank_drops_stray_options(self) -> None:
        question = QuizQuestion.model_validate(
            {
                "format": QuestionFormat.fill_in_blank,
                "question": "The _____ is the powerhouse of the cell.",
                "answer": "mitochondrion",
                "explanation": "It produces ATP.",
                "options": ["ignored"],
            }
        )

        assert question.options is None
        assert question.correct_answer == "mitochondrion"


class TestExplanation:
    """Test Explanation parsing."""

    def test_camel_case_fields(self) -> None:
        explanation = Explanation.model_validate(
            {"steps": ["One", "Two"], "conceptsUsed": ["energy"], "additionalNotes": "Remember it."}
        )

        assert explanation.concepts_used == ["energy"]
        assert explanation.additional_notes == "Remember it."
        assert explanation.to_prompt_payload()["conceptsUsed"] == ["energy"]

    def test_step_objects_are_flattened(self) -> None:
        explanation = Explanation.model_validate(
            {"steps": [{"step": 1, "description": "First"}, {"text": "Second"}, ""]}
        )

        assert explanation.steps == ["First", "Second"]

    def test_empty_steps_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Explanation.model_validate({"steps": []})


def test_summary_accepts_aliases() -> None:
    assert SummaryItem.model_validate({"summary": " Short. "}).text == "Short."
    assert SummaryItem.model_validate({"content": "Body"}).text == "Body"


def test_generated_item_is_discriminated_by_kind() -> None:
    adapter = TypeAdapter(GeneratedItem)

    item = adapter.validate_python({"kind": "study_guide_section", "index": 1, "total": 3, "text": "x"})

    assert isinstance(item, StudyGuideSection)
    assert item.index == 1
