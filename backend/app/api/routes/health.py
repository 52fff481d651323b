"""Health check endpoints.

- /health is a plain liveness probe
- /healthz reports which generation backend is serving requests
"""

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


def check_generation(request: Request) -> tuple[bool, str]:
    """Check the generation client created by the lifespan.

    Returns:
        (is_ok, backend name or status message)
    """
    client = getattr(request.app.state, "generation_client", None)
    if client is None:
        return (False, "not_initialized")
    return (True, str(getattr(client, "backend", "unknown")))


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(request: Request) -> dict[str, Any] | JSONResponse:
    """Health check endpoint.

    Returns:
        200 with component status if the generation client is ready
        503 otherwise
    """
    generation_ok, generation_status = check_generation(request)

    response_body = {
        "status": "ok" if generation_ok else "degraded",
        "components": {
            "generation": generation_status,
        },
    }

    if not generation_ok:
        return JSONResponse(status_code=503, content=response_body)

    return response_body
