"""Health check endpoint."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Response

from ccbridge.core.logging import get_logger


router = APIRouter()
logger = get_logger(__name__)

PROVIDER_NAME = "claude-code-cli"


@router.get("/health")
async def health_check(response: Response) -> dict[str, Any]:
    """Liveness check. The Claude CLI is not invoked."""
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    logger.debug("health_check_request")
    return {
        "status": "ok",
        "provider": PROVIDER_NAME,
        "timestamp": datetime.now(UTC).isoformat(),
    }
