import logging

from fastapi import FastAPI

from creaticon.agent.artifact_store import ArtifactLibrary, ArtifactStore, build_store
from creaticon.agent.orchestrator import GenerationOrchestrator
from creaticon.agent.renderer import RenderScheduler
from creaticon.api.main import api_router
from creaticon.core.config import settings


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(
    *,
    orchestrator: GenerationOrchestrator | None = None,
    scheduler: RenderScheduler | None = None,
    store: ArtifactStore | None = None,
) -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    store = store if store is not None else build_store(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
    )
    app.state.orchestrator = orchestrator or GenerationOrchestrator(store=store)
    app.state.scheduler = scheduler or RenderScheduler()
    app.state.library = ArtifactLibrary(store)
    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
