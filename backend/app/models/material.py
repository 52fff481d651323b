"""Material request/result models and the /study-material API contract."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from backend.app.models.common import MaterialType, QuestionFormat, SkillLevel
from backend.app.models.items import GeneratedItem


class MaterialRequest(BaseModel):
    """Validated input for one pipeline run. Immutable for the run's duration."""

    model_config = ConfigDict(frozen=True)

    document_text: str
    material_type: MaterialType
    skill_level: SkillLevel = SkillLevel.intermediate
    target_level: SkillLevel | None = None
    subject: str | None = None
    number_of_questions: int | None = None
    question_format: QuestionFormat = QuestionFormat.multiple_choice
    include_explanations: bool = False

    @property
    def needs_adjustment(self) -> bool:
        """True when generated content must be rewritten for another level."""
        return self.adjustment_target is not None

    @property
    def adjustment_target(self) -> SkillLevel | None:
        """Level to rewrite generated content for, or None when no rewrite is needed."""
        if self.target_level is None or self.target_level == self.skill_level:
            return None
        return self.target_level



class MaterialResult(BaseModel):
    """Assembled output of a successful pipeline run."""

    success: bool = True
    material_type: MaterialType
    content: str
    items: list[GeneratedItem] = Field(default_factory=list)
    truncated: bool = False
    adjusted: bool = False
    fallbacks: int = 0


class StudyMaterialRequest(BaseModel):
    """Request body for POST /study-material (camelCase as sent by the UI)."""

    model_config = ConfigDict(populate_by_name=True)

    document_text: str = Field("", alias="documentText")
    material_type: str = Field(..., alias="materialType")
    subject: str | None = None
    complexity: str | None = None
    skill_level: str | None = Field(None, alias="skillLevel")
    target_skill_level: str | None = Field(None, alias="targetSkillLevel")
    number_of_questions: int | None = Field(None, alias="numberOfQuestions")
    question_format: str | None = Field(None, alias="questionFormat")
    include_explanations: bool = Field(False, alias="includeExplanations")


class StudyMaterialResponse(BaseModel):
    """Response envelope for POST /study-material."""

    success: bool
    content: str | None = None
    error: str | None = None
    truncated: bool | None = None


class AdjustDifficultyRequest(BaseModel):
    """Request body for POST /study-material/adjust."""

    model_config = ConfigDict(populate_by_name=True)

    content: Any
    content_type: str = Field(..., alias="contentType")
    from_level: str = Field(..., alias="fromLevel")
    to_level: str = Field(..., alias="toLevel")
    preserve_core: bool = Field(True, alias="preserveCore")
    subject: str | None = None


class AdjustDifficultyResponse(BaseModel):
    """Response envelope for POST /study-material/adjust."""

    success: bool
    content: Any = None
    adjusted: bool = False
    error: str | None = None
