from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from creaticon.agent.artifacts import Artifact, RenderJobStats, RenderOptions, RenderResult
from creaticon.api.deps import SchedulerDep

router = APIRouter()


class RenderRequest(BaseModel):
    artifact_id: str = Field(min_length=1)
    artifact: Artifact
    options: RenderOptions = Field(default_factory=RenderOptions)


@router.post("", response_model=RenderResult)
async def request_render(payload: RenderRequest, scheduler: SchedulerDep) -> Any:
    """Debounced render; concurrent requests for the same artifact share one result."""
    return await scheduler.request_render(payload.artifact_id, payload.artifact, payload.options)


@router.get("", response_model=list[RenderJobStats])
def list_render_jobs(scheduler: SchedulerDep) -> Any:
    return scheduler.all_jobs()


@router.get("/{artifact_id}", response_model=RenderJobStats)
def read_render_job(artifact_id: str, scheduler: SchedulerDep) -> Any:
    stats = scheduler.get_job(artifact_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Render job not found")
    return stats


@router.delete("/{artifact_id}", status_code=204)
def clear_render_job(artifact_id: str, scheduler: SchedulerDep) -> None:
    if not scheduler.clear(artifact_id):
        raise HTTPException(status_code=404, detail="Render job not found")
