import logging

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from creaticon.agent.artifacts import GenerationOutcome, GenerationRequest
from creaticon.agent.errors import ProviderAuthenticationError, ProvidersExhaustedError
from creaticon.api.deps import OrchestratorDep

logger = logging.getLogger(__name__)

router = APIRouter()


def generation_http_error(exc: ProviderAuthenticationError | ProvidersExhaustedError) -> HTTPException:
    if isinstance(exc, ProviderAuthenticationError):
        return HTTPException(
            status_code=502,
            detail={
                "type": "authentication",
                "provider": exc.provider,
                "message": str(exc),
                "attempts": [a.model_dump(mode="json", exclude={"raw_text"}) for a in exc.attempts],
            },
        )
    return HTTPException(
        status_code=502,
        detail={"type": "providers_exhausted", "message": str(exc), "failures": exc.failures},
    )


@router.post("", response_model=GenerationOutcome)
async def generate(payload: GenerationRequest, orchestrator: OrchestratorDep) -> GenerationOutcome:
    """Run analysis, provider dispatch and extraction in one request."""
    try:
        return await orchestrator.generate(payload)
    except (ProviderAuthenticationError, ProvidersExhaustedError) as exc:
        raise generation_http_error(exc) from exc


@router.post("/stream")
async def generate_stream(payload: GenerationRequest, orchestrator: OrchestratorDep):
    """Same flow as `generate`, streamed as SSE progress events."""
    return EventSourceResponse(orchestrator.run_generation_events(payload))
