"""OpenAI-compatible chat completions endpoint."""

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ccbridge.api.dependencies import OrchestratorDep
from ccbridge.api.middleware.errors import (
    INVALID_MESSAGES_CODE,
    INVALID_MESSAGES_MESSAGE,
)
from ccbridge.core.errors import ValidationError
from ccbridge.models.openai import OpenAIChatCompletionRequest
from ccbridge.services.orchestrator import new_request_id


router = APIRouter()

# Nobody reads this status; it only marks the request in access logs
CLIENT_CLOSED_REQUEST = 499


@router.post("/chat/completions", response_model=None)
async def create_chat_completion(
    request: Request,
    body: OpenAIChatCompletionRequest,
    orchestrator: OrchestratorDep,
) -> Response:
    """Create a chat completion using one Claude CLI run.

    Streams ``chat.completion.chunk`` frames when ``stream`` is true, otherwise
    returns a single ``chat.completion`` document.
    """
    if not body.messages:
        raise ValidationError(INVALID_MESSAGES_MESSAGE, code=INVALID_MESSAGES_CODE)

    request_id = new_request_id()
    headers = {"X-Request-Id": request_id}

    if body.stream:
        return StreamingResponse(
            orchestrator.stream(body, request_id),
            media_type="text/event-stream",
            headers={
                **headers,
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    collected = await orchestrator.complete(
        body, request_id, is_disconnected=request.is_disconnected
    )
    if collected is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST, headers=headers)
    return JSONResponse(
        status_code=collected.status_code, content=collected.body, headers=headers
    )
