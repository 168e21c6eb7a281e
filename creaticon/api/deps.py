from typing import Annotated

from fastapi import Depends, Request

from creaticon.agent.artifact_store import ArtifactLibrary
from creaticon.agent.orchestrator import GenerationOrchestrator
from creaticon.agent.pipeline import PipelineEngine
from creaticon.agent.renderer import RenderScheduler


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def get_engine(request: Request) -> PipelineEngine:
    return request.app.state.orchestrator.engine


def get_scheduler(request: Request) -> RenderScheduler:
    return request.app.state.scheduler


def get_library(request: Request) -> ArtifactLibrary:
    return request.app.state.library


OrchestratorDep = Annotated[GenerationOrchestrator, Depends(get_orchestrator)]
EngineDep = Annotated[PipelineEngine, Depends(get_engine)]
SchedulerDep = Annotated[RenderScheduler, Depends(get_scheduler)]
LibraryDep = Annotated[ArtifactLibrary, Depends(get_library)]
