from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from creaticon.agent.artifacts import GenerationOptions, GenerationRequest, Pipeline
from creaticon.agent.errors import PipelineNotFoundError
from creaticon.api.deps import EngineDep

router = APIRouter()


class PipelineStartRequest(BaseModel):
    request: GenerationRequest
    options: GenerationOptions = Field(default_factory=GenerationOptions)


class PipelineResumeRequest(BaseModel):
    feedback: dict[str, str] | None = Field(default=None, description="Step id -> feedback text")


@router.post("", response_model=Pipeline, status_code=202)
async def start_pipeline(payload: PipelineStartRequest, engine: EngineDep) -> Any:
    pipeline_id = await engine.start(payload.request, payload.options)
    return engine.get(pipeline_id)


@router.get("", response_model=list[Pipeline])
def list_pipelines(engine: EngineDep, active: bool = False) -> Any:
    return engine.active_pipelines() if active else engine.list_pipelines()


@router.get("/{pipeline_id}", response_model=Pipeline)
def read_pipeline(pipeline_id: str, engine: EngineDep) -> Any:
    try:
        return engine.get(pipeline_id)
    except PipelineNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Pipeline not found") from exc


@router.post("/{pipeline_id}/resume", response_model=Pipeline)
async def resume_pipeline(
    pipeline_id: str,
    engine: EngineDep,
    payload: PipelineResumeRequest | None = None,
) -> Any:
    try:
        return await engine.resume(pipeline_id, payload.feedback if payload else None)
    except PipelineNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Pipeline not found") from exc


@router.post("/{pipeline_id}/cancel", response_model=Pipeline)
async def cancel_pipeline(pipeline_id: str, engine: EngineDep) -> Any:
    try:
        return await engine.cancel(pipeline_id)
    except PipelineNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Pipeline not found") from exc
