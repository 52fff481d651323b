"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - llm_call_latency_ms{kind, outcome}
    - llm_errors_total{kind, reason}
    - generation_retries_total{kind}
    - pipeline_runs_total{material_type, outcome}
    - difficulty_fallbacks_total{content_type}
    """
    metrics_output = generate_latest()
    return Response(content=metrics_output, media_type=CONTENT_TYPE_LATEST)
