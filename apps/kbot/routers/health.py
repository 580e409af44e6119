"""
Health Check Endpoints.

- GET /health: Liveness probe (process running)
- GET /ready: Readiness probe (server accepting scrapes)
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get("/health", response_class=PlainTextResponse)
async def health():
    """Liveness probe - is the bot process running?"""
    return "ok"


@router.get("/ready", response_class=PlainTextResponse)
async def ready():
    """Readiness probe - the bot keeps no dependencies worth gating on."""
    return "ready"
