from fastapi import APIRouter

from creaticon.api.routes import generate, library, pipelines, render, utils

api_router = APIRouter()
api_router.include_router(utils.router, tags=["utils"])
api_router.include_router(generate.router, prefix="/generate", tags=["generate"])
api_router.include_router(pipelines.router, prefix="/pipelines", tags=["pipelines"])
api_router.include_router(render.router, prefix="/render", tags=["render"])
api_router.include_router(library.router, prefix="/library", tags=["library"])
