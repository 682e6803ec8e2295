from fastapi import APIRouter
from careform.models.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness of this service plus connectivity to the local Ollama runtime."""
    from careform.main import llm_client

    ollama_reachable = await llm_client.check_health()
    models = await llm_client.list_models() if ollama_reachable else []

    return HealthResponse(
        status="ok",
        ollama="connected" if ollama_reachable else "disconnected",
        models=models[:5],
    )
