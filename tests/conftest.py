"""Shared pytest fixtures for all test suites."""

import inspect
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import get_generation_client
from backend.app.config import Settings
from backend.app.llm.client import DeterministicStubClient
from backend.app.main import create_app
from backend.app.models.common import ContentType, QuestionFormat, SkillLevel
from backend.app.models.items import (
    ConceptReview,
    Explanation,
    QuizQuestion,
    StudyGuideSection,
    SummaryItem,
)


class FakeGenerationClient:
    """Scripted generation client that records every call.

    Each method consumes its script in order. A scripted outcome may be a
    value, an exception instance (raised), or a callable taking the call's
    keyword arguments (sync or async). When a script runs out, the
    deterministic stub answers instead.
    """

    backend = "fake"

    def __init__(self, **scripts: list[Any]) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.scripts: dict[str, list[Any]] = {name: list(s) for name, s in scripts.items()}
        self._stub = DeterministicStubClient()
        self.closed = False

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]

    async def _dispatch(self, name: str, **kwargs: Any) -> Any:
        self.calls.append((name, kwargs))
        script = self.scripts.get(name)
        if not script:
            return await getattr(self._stub, name)(**kwargs)

        outcome = script.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            result = outcome(**kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result
        return outcome

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        self.closed = True

    async def summarize(self, text: str, level: SkillLevel, subject: str | None = None) -> SummaryItem:
        return await self._dispatch("summarize", text=text, level=level, subject=subject)

    async def generate_study_guide_section(
        self, text: str, level: SkillLevel, subject: str | None, index: int, total: int
    ) -> StudyGuideSection:
        return await self._dispatch(
            "generate_study_guide_section",
            text=text,
            level=level,
            subject=subject,
            index=index,
            total=total,
        )

    async def generate_concept_review(
        self, sections: list[str], level: SkillLevel, subject: str | None = None
    ) -> ConceptReview:
        return await self._dispatch(
            "generate_concept_review", sections=sections, level=level, subject=subject
        )

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
        return await self._dispatch(
            "generate_quiz_section",
            text=text,
            quota=quota,
            question_format=question_format,
            level=level,
            subject=subject,
            section_index=section_index,
            section_total=section_total,
        )

    async def explain(
        self, question: QuizQuestion, context: str, level: SkillLevel, subject: str | None = None
    ) -> Explanation:
        return await self._dispatch(
            "explain", question=question, context=context, level=level, subject=subject
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
        return await self._dispatch(
            "rewrite_for_level",
            payload=payload,
            content_type=content_type,
            from_level=from_level,
            to_level=to_level,
            preserve_core=preserve_core,
            subject=subject,
        )


def make_questions(count: int, label: str = "q") -> list[QuizQuestion]:
    """Build `count` valid multiple-choice questions."""
    return [
        QuizQuestion(
            prompt=f"Question {label}{i + 1}?",
            options=[f"{label}{i + 1} right", f"{label}{i + 1} wrong", "Neither", "Both"],
            correct_answer="A",
            explanation=f"Because {label}{i + 1}.",
        )
        for i in range(count)
    ]


def make_document(min_chars: int) -> str:
    """Build a plain-prose document of at least min_chars characters."""
    sentences = []
    length = 0
    i = 0
    while length < min_chars:
        sentence = f"Topic {i} explains concept number {i} with a short worked example."
        sentences.append(sentence)
        length += len(sentence) + 1
        i += 1
    return " ".join(sentences)


@pytest.fixture
def fake_client() -> FakeGenerationClient:
    """Unscripted fake client (stub answers for every call)."""
    return FakeGenerationClient()


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, openai_api_key=None, log_json=False)  # type: ignore[call-arg]


@pytest.fixture
def app_client(fake_client: FakeGenerationClient, test_settings: Settings) -> Iterator[TestClient]:
    """Test client whose routes use the fake generation client."""
    app = create_app(test_settings)
    app.dependency_overrides[get_generation_client] = lambda: fake_client
    with TestClient(app) as client:
        yield client


@pytest.fixture
def question_factory() -> Any:
    """Factory for valid multiple-choice questions."""
    return make_questions


@pytest.fixture
def document_factory() -> Any:
    """Factory for plain-prose documents of a minimum length."""
    return make_document


@pytest.fixture
def scripted_client() -> type[FakeGenerationClient]:
    """Fake client class; call with per-method scripts."""
    return FakeGenerationClient
