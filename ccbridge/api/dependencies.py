"""Shared dependencies for the ccbridge API."""

from typing import Annotated

from fastapi import Depends, Request

from ccbridge.core.errors import ServiceUnavailableError
from ccbridge.core.logging import get_logger
from ccbridge.services.orchestrator import ResponseOrchestrator


logger = get_logger(__name__)


def get_orchestrator(request: Request) -> ResponseOrchestrator:
    """Get the response orchestrator from app state."""
    orchestrator: ResponseOrchestrator | None = getattr(
        request.app.state, "orchestrator", None
    )
    if orchestrator is None:
        logger.error("orchestrator_missing_on_app_state")
        raise ServiceUnavailableError("Response orchestrator not initialized")
    return orchestrator


OrchestratorDep = Annotated[ResponseOrchestrator, Depends(get_orchestrator)]
