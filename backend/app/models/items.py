"""Generated item models - one tagged variant per content kind.

Model output is loosely shaped JSON; these models are the schema it must
satisfy. Anything that fails validation is treated as a parse failure by the
generation client.
"""

import re
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from backend.app.models.common import QuestionFormat

MCQ_OPTION_COUNT = 4
OPTION_LETTERS = "ABCD"

_OPTION_PREFIX = re.compile(r"^\s*(?:\(?[A-Da-d][.):]|[A-Da-d]\s*-)\s+")
_LETTER_ANSWER = re.compile(r"^\s*(?:option\s+)?\(?([A-Da-d])\)?[.):]?\s*$", re.IGNORECASE)


class _Item(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class SummaryItem(_Item):
    """Summary of one chunk (or of a whole short document)."""

    kind: Literal["summary"] = "summary"
    text: str = Field(..., min_length=1, validation_alias=AliasChoices("text", "summary", "content"))


class StudyGuideSection(_Item):
    """Study guide section generated from one chunk."""

    kind: Literal["study_guide_section"] = "study_guide_section"
    index: int = Field(0, ge=0)
    total: int = Field(1, ge=1)
    text: str = Field(..., min_length=1, validation_alias=AliasChoices("text", "content", "guide"))


class ConceptReview(_Item):
    """Cross-section key concepts review."""

    kind: Literal["concept_review"] = "concept_review"
    text: str = Field(..., min_length=1, validation_alias=AliasChoices("text", "review", "content"))


class Explanation(_Item):
    """Detailed, step-by-step answer explanation."""

    kind: Literal["explanation"] = "explanation"
    steps: list[str] = Field(..., min_length=1)
    concepts_used: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("concepts_used", "conceptsUsed")
    )
    additional_notes: str | None = Field(
        None, validation_alias=AliasChoices("additional_notes", "additionalNotes")
    )

    @field_validator("steps", mode="before")
    @classmethod
    def _flatten_steps(cls, value: Any) -> Any:
        # Models sometimes return [{"step": 1, "description": "..."}]
        if isinstance(value, list):
            flat = []
            for step in value:
                if isinstance(step, dict):
                    step = step.get("description") or step.get("text") or ""
                flat.append(step)
            return [s for s in flat if isinstance(s, str) and s.strip()]
        return value

    def to_prompt_payload(self) -> dict[str, Any]:
        """JSON shape used in prompts."""
        return {
            "steps": self.steps,
            "conceptsUsed": self.concepts_used,
            "additionalNotes": self.additional_notes,
        }


class QuizQuestion(_Item):
    """Single quiz question.

    Multiple-choice questions always carry exactly four options and a correct
    answer normalised to a letter A-D. Other formats carry no options.
    """

    kind: Literal["quiz_question"] = "quiz_question"
    format: QuestionFormat = QuestionFormat.multiple_choice
    prompt: str = Field(..., min_length=1, validation_alias=AliasChoices("prompt", "question"))
    options: list[str] | None = Field(None, validation_alias=AliasChoices("options", "choices"))
    correct_answer: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("correct_answer", "correctAnswer", "answer", "modelAnswer"),
    )
    explanation: str = Field(..., min_length=1)
    detailed_explanation: Explanation | None = None

    @model_validator(mode="before")
    @classmethod
    def _key_points_as_explanation(cls, data: Any) -> Any:
        # Open-ended questions come back with keyPoints instead of an explanation
        if isinstance(data, dict) and not data.get("explanation"):
            key_points = data.get("keyPoints") or data.get("key_points")
            if isinstance(key_points, list) and key_points:
                data = {**data, "explanation": "\n".join(str(p) for p in key_points)}
        return data

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _coerce_answer(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return str(value)
        if isinstance(value, int):
            return str(value)
        return value

    @model_validator(mode="after")
    def _check_format_invariants(self) -> "QuizQuestion":
        if self.format != QuestionFormat.multiple_choice:
            self.options = None
            return self

        if not self.options or len(self.options) != MCQ_OPTION_COUNT:
            count = len(self.options) if self.options else 0
            raise ValueError(f"multiple choice question needs {MCQ_OPTION_COUNT} options, got {count}")

        options = [_OPTION_PREFIX.sub("", str(o)).strip() for o in self.options]
        if any(not o for o in options):
            raise ValueError("multiple choice options must be non-empty")
        if len({o.lower() for o in options}) != MCQ_OPTION_COUNT:
            raise ValueError("multiple choice options must be distinct")

        self.options = options
        self.correct_answer = OPTION_LETTERS[_answer_index(self.correct_answer, options)]
        return self

    @property
    def correct_index(self) -> int | None:
        """0-based index of the correct option (multiple choice only)."""
        if self.format != QuestionFormat.multiple_choice:
            return None
        return OPTION_LETTERS.index(self.correct_answer)

    def to_prompt_payload(self) -> dict[str, Any]:
        """JSON shape used in prompts (camelCase, like the model returns it)."""
        payload: dict[str, Any] = {
            "format": self.format.value,
            "question": self.prompt,
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
        }
        if self.options is not None:
            payload["options"] = self.options
        return payload


def _answer_index(answer: str, options: list[str]) -> int:
    """Resolve a correct answer given as letter, index, or option text."""
    text = answer.strip()

    letter = _LETTER_ANSWER.match(text)
    if letter:
        return OPTION_LETTERS.index(letter.group(1).upper())

    if text.isdigit() and int(text) < MCQ_OPTION_COUNT:
        return int(text)

    stripped = _OPTION_PREFIX.sub("", text).strip().lower()
    for i, option in enumerate(options):
        if option.lower() == stripped:
            return i

    raise ValueError(f"correct answer {answer!r} does not identify exactly one option")


GeneratedItem = Annotated[
    Union[SummaryItem, StudyGuideSection, ConceptReview, QuizQuestion, Explanation],
    Field(discriminator="kind"),
]
