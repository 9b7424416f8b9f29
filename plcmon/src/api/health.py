"""
Health check endpoint for the PLC monitor API.

Provides a simple GET /health endpoint that returns {"status": "ok"} with
HTTP 200. Intended for container HEALTHCHECK and process supervisors.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-015)

TODO:
- None
"""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Return a simple liveness status."""
    return {"status": "ok"}
