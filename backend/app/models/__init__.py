"""Models package - re-exports for convenience."""

from backend.app.models.common import (
    ContentKind,
    ContentType,
    MaterialType,
    QuestionFormat,
    SkillLevel,
)
from backend.app.models.docs import Chunk, Section
from backend.app.models.items import (
    ConceptReview,
    Explanation,
    GeneratedItem,
    QuizQuestion,
    StudyGuideSection,
    SummaryItem,
)
from backend.app.models.material import (
    AdjustDifficultyRequest,
    AdjustDifficultyResponse,
    MaterialRequest,
    MaterialResult,
    StudyMaterialRequest,
    StudyMaterialResponse,
)

__all__ = [
    "AdjustDifficultyRequest",
    "AdjustDifficultyResponse",
    "Chunk",
    "ConceptReview",
    "ContentKind",
    "ContentType",
    "Explanation",
    "GeneratedItem",
    "MaterialRequest",
    "MaterialResult",
    "MaterialType",
    "QuestionFormat",
    "Section",
    "SkillLevel",
    "StudyGuideSection",
    "StudyMaterialRequest",
    "StudyMaterialResponse",
    "SummaryItem",
]
