"""Integration tests for POST /study-material and POST /study-material/adjust."""

import asyncio
import json
from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import get_generation_client
from backend.app.api.routes import study_material
from backend.app.config import Settings
from backend.app.errors import GenerationError, GenerationErrorKind
from backend.app.generation.retry import CancelToken
from backend.app.main import create_app
from backend.app.models.items import SummaryItem
from backend.app.models.material import StudyMaterialRequest
from backend.app.orchestration.pipeline import StudyMaterialPipeline


@pytest.fixture
def make_client() -> Iterator[Callable[..., TestClient]]:
    """Build a test client around a given generation client and settings overrides."""
    opened: list[TestClient] = []

    def build(generation_client: Any, raise_server_exceptions: bool = True, **overrides: Any) -> TestClient:
        settings = Settings(_env_file=None, openai_api_key=None, log_json=False, **overrides)  # type: ignore[call-arg]
        app = create_app(settings)
        app.dependency_overrides[get_generation_client] = lambda: generation_client
        client = TestClient(app, raise_server_exceptions=raise_server_exceptions)
        client.__enter__()
        opened.append(client)
        return client

    yield build

    for client in opened:
        client.__exit__(None, None, None)


class TestStudyMaterial:
    """Test POST /study-material."""

    def test_summary_success(self, app_client: TestClient, fake_client) -> None:
        response = app_client.post(
            "/study-material",
            json={"documentText": "The water cycle moves water. Evaporation comes first.", "materialType": "summary"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["content"].startswith("(intermediate summary) The water cycle")
        assert data["truncated"] is False
        assert "error" not in data
        assert len(fake_client.calls_to("summarize")) == 1

    def test_practice_quiz_success(self, app_client: TestClient, fake_client, document_factory) -> None:
        response = app_client.post(
            "/study-material",
            json={
                "documentText": document_factory(6000),
                "materialType": "practice_quiz",
                "numberOfQuestions": 10,
                "subject": "Biology",
                "skillLevel": "beginner",
            },
        )

        assert response.status_code == 200
        content = response.json()["content"]
        assert content.startswith("# Practice Quiz: Biology")
        assert [c["quota"] for c in fake_client.calls_to("generate_quiz_section")] == [3, 3, 4]

    def test_study_guide_success(self, app_client: TestClient) -> None:
        response = app_client.post(
            "/study-material",
            json={"documentText": "Atoms bond. Molecules form.", "materialType": "study_guide"},
        )

        assert response.status_code == 200
        assert "## Key Concepts Review" in response.json()["content"]

    def test_empty_document_is_400(self, app_client: TestClient, fake_client) -> None:
        response = app_client.post("/study-material", json={"documentText": "  ", "materialType": "summary"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Document text is empty"}
        assert fake_client.calls == []

    def test_unknown_material_type_is_400(self, app_client: TestClient) -> None:
        response = app_client.post("/study-material", json={"documentText": "Text.", "materialType": "flashcards"})

        assert response.status_code == 400
        assert "Invalid material type" in response.json()["error"]

    def test_missing_material_type_is_400(self, app_client: TestClient) -> None:
        response = app_client.post("/study-material", json={"documentText": "Text."})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"].startswith("Invalid request: body.materialType")

    def test_question_count_out_of_range_is_400(self, app_client: TestClient) -> None:
        response = app_client.post(
            "/study-material",
            json={"documentText": "Text.", "materialType": "practice_quiz", "numberOfQuestions": 99},
        )

        assert response.status_code == 400
        assert "numberOfQuestions" in response.json()["error"]

    def test_oversized_body_is_413(self, make_client, fake_client) -> None:
        client = make_client(fake_client, max_request_bytes=1000)

        response = client.post("/study-material", json={"documentText": "x" * 2000, "materialType": "summary"})

        assert response.status_code == 413
        assert response.json() == {"success": False, "error": "Document too large"}
        assert fake_client.calls == []

    def test_chunked_oversized_body_is_413(self, make_client, fake_client) -> None:
        client = make_client(fake_client, max_request_bytes=1000)
        payload = json.dumps({"documentText": "x" * 2000, "materialType": "summary"}).encode()

        def chunks() -> Iterator[bytes]:
            for start in range(0, len(payload), 256):
                yield payload[start : start + 256]

        response = client.post(
            "/study-material", content=chunks(), headers={"content-type": "application/json"}
        )

        assert response.status_code == 413
        assert response.json() == {"success": False, "error": "Document too large"}
        assert fake_client.calls == []

    def test_chunked_body_within_limit_is_accepted(self, make_client, fake_client) -> None:
        client = make_client(fake_client, max_request_bytes=1000)
        payload = json.dumps({"documentText": "Short chunked text.", "materialType": "summary"}).encode()

        def chunks() -> Iterator[bytes]:
            yield payload[:20]
            yield payload[20:]

        response = client.post(
            "/study-material", content=chunks(), headers={"content-type": "application/json"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert len(fake_client.calls_to("summarize")) == 1


    def test_generation_failure_is_500_with_unit(self, make_client, scripted_client) -> None:
        failure = GenerationError(GenerationErrorKind.PARSE_FAILURE, "no JSON object in response")
        client = make_client(scripted_client(summarize=[failure, failure, failure]))

        response = client.post("/study-material", json={"documentText": "Short text.", "materialType": "summary"})

        assert response.status_code == 500
        error = response.json()["error"]
        assert error.startswith("Failed to generate summary (chunk 1 of 1): ")
        assert "after 3 attempt(s)" in error

    def test_slow_generation_is_504(self, make_client, scripted_client) -> None:
        async def slow(**kwargs: Any) -> SummaryItem:
            await asyncio.sleep(2)
            return SummaryItem(text="late")

        client = make_client(scripted_client(summarize=[slow]), request_timeout_seconds=0.05)

        response = client.post("/study-material", json={"documentText": "Short text.", "materialType": "summary"})

        assert response.status_code == 504
        assert response.json()["error"] == "Study material generation timed out"

    def test_unexpected_error_is_generic_500(self, make_client, scripted_client) -> None:
        client = make_client(scripted_client(summarize=[RuntimeError("bug")]), raise_server_exceptions=False)

        response = client.post("/study-material", json={"documentText": "Short text.", "materialType": "summary"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Internal server error"}

    def test_long_document_is_truncated(self, make_client, fake_client, document_factory) -> None:
        client = make_client(fake_client, max_document_chars=500)

        response = client.post(
            "/study-material", json={"documentText": document_factory(3000), "materialType": "summary"}
        )

        assert response.status_code == 200
        assert response.json()["truncated"] is True


class TestAdjustDifficulty:
    """Test POST /study-material/adjust."""

    QUESTION = {
        "question": "What is 2 + 2?",
        "options": ["3", "4", "5", "22"],
        "correctAnswer": "B",
        "explanation": "Basic addition.",
    }

    def test_question_is_adjusted(self, app_client: TestClient, fake_client) -> None:
        response = app_client.post(
            "/study-material/adjust",
            json={"content": self.QUESTION, "contentType": "question", "fromLevel": "beginner", "toLevel": "advanced"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["adjusted"] is True
        assert data["content"]["question"] == "What is 2 + 2?"
        assert data["content"]["correctAnswer"] == "B"
        assert len(fake_client.calls_to("rewrite_for_level")) == 1

    def test_broken_rewrite_falls_back(self, make_client, scripted_client) -> None:
        client = make_client(scripted_client(rewrite_for_level=[{"question": "only a prompt"}]))

        response = client.post(
            "/study-material/adjust",
            json={"content": self.QUESTION, "contentType": "question", "fromLevel": "beginner", "toLevel": "advanced"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["adjusted"] is False
        assert data["content"] == self.QUESTION

    def test_summary_adjustment(self, make_client, scripted_client) -> None:
        client = make_client(scripted_client(rewrite_for_level=[{"content": "Harder summary."}]))

        response = client.post(
            "/study-material/adjust",
            json={"content": "Easy summary.", "contentType": "summary", "fromLevel": "beginner", "toLevel": "advanced"},
        )

        assert response.json()["content"] == "Harder summary."

    def test_invalid_level_is_400(self, app_client: TestClient) -> None:
        response = app_client.post(
            "/study-material/adjust",
            json={"content": "Text.", "contentType": "summary", "fromLevel": "expert", "toLevel": "beginner"},
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid adjustment request")

    def test_malformed_content_is_400(self, app_client: TestClient, fake_client) -> None:
        response = app_client.post(
            "/study-material/adjust",
            json={"content": {"steps": []}, "contentType": "explanation", "fromLevel": "beginner", "toLevel": "advanced"},
        )

        assert response.status_code == 400
        assert fake_client.calls == []

    def test_persistent_model_error_is_500(self, make_client, scripted_client) -> None:
        failure = GenerationError(GenerationErrorKind.MODEL_ERROR, "API error: overloaded")
        client = make_client(scripted_client(rewrite_for_level=[failure, failure, failure]))

        response = client.post(
            "/study-material/adjust",
            json={"content": "Text.", "contentType": "summary", "fromLevel": "beginner", "toLevel": "advanced"},
        )

        assert response.status_code == 500
        assert response.json()["error"].startswith("Failed to adjust difficulty")


class TestClientDisconnect:
    """Test cancellation of POST /study-material when the client goes away."""

    @pytest.mark.asyncio
    async def test_disconnect_cancels_run_and_returns_499(
        self, monkeypatch, scripted_client, test_settings
    ) -> None:
        monkeypatch.setattr(study_material, "DISCONNECT_POLL_SECONDS", 0.01)
        started = asyncio.Event()
        blocked_call_cancelled = asyncio.Event()

        async def blocked(**kwargs: Any) -> SummaryItem:
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                blocked_call_cancelled.set()
                raise
            return SummaryItem(text="never")

        async def is_disconnected() -> bool:
            return started.is_set()

        request = MagicMock()
        request.is_disconnected = is_disconnected

        pipeline = StudyMaterialPipeline(scripted_client(summarize=[blocked]))
        tokens: list[CancelToken | None] = []
        run = pipeline.run

        async def recording_run(material_request: Any, token: CancelToken | None = None) -> Any:
            tokens.append(token)
            return await run(material_request, token)

        pipeline.run = recording_run  # type: ignore[method-assign]

        response = await study_material.create_study_material(
            StudyMaterialRequest(documentText="Short text.", materialType="summary"),
            request,
            pipeline=pipeline,
            settings=test_settings,
        )

        assert response.status_code == 499
        assert json.loads(response.body) == {"success": False, "error": "Client closed request"}
        assert blocked_call_cancelled.is_set()
        assert tokens[0] is not None
        assert tokens[0].cancelled is True
        assert pipeline.last_state.status == "failed"
