"""Model listing endpoint."""

from fastapi import APIRouter

from ccbridge.models.openai import OpenAIModelsResponse


router = APIRouter()


@router.get("/models", response_model=OpenAIModelsResponse)
async def list_models() -> OpenAIModelsResponse:
    """List the Claude model families the CLI can serve."""
    return OpenAIModelsResponse.create_default()
