from fastapi import APIRouter

from creaticon.api.deps import OrchestratorDep

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check() -> bool:
    return True


@router.get("/providers/")
async def list_providers(orchestrator: OrchestratorDep) -> list[dict]:
    """Configured providers in fallback order. Keys are never returned."""
    return [
        spec.model_dump(include={"name", "priority", "family", "model", "supports_streaming"})
        for spec in sorted(orchestrator.providers, key=lambda s: s.priority)
    ]
