import logging
import re
from typing import Any

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel, Field

from creaticon.agent.artifacts import Artifact, SavedArtifactSet, TargetKind
from creaticon.agent.bundle_export import build_export_zip
from creaticon.agent.errors import StorageError
from creaticon.api.deps import LibraryDep

logger = logging.getLogger(__name__)

router = APIRouter()


class SaveArtifactSetRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    kind: TargetKind
    artifacts: list[Artifact]
    description: str | None = None
    tags: list[str] = Field(default_factory=list)


@router.get("", response_model=list[SavedArtifactSet])
def list_artifact_sets(library: LibraryDep, kind: TargetKind | None = None) -> Any:
    return library.list_entries(kind)


@router.post("", response_model=SavedArtifactSet, status_code=201)
def save_artifact_set(payload: SaveArtifactSetRequest, library: LibraryDep) -> Any:
    try:
        return library.save(
            payload.name,
            payload.kind,
            payload.artifacts,
            description=payload.description,
            tags=payload.tags,
        )
    except StorageError as exc:
        logger.error("Failed to save artifact set %s: %s", payload.name, exc)
        raise HTTPException(status_code=500, detail="Could not save the artifact set") from exc


@router.get("/{entry_id}", response_model=SavedArtifactSet)
def read_artifact_set(entry_id: str, library: LibraryDep) -> Any:
    entry = library.load(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Artifact set not found")
    return entry


@router.get("/{entry_id}/download")
def download_artifact_set(entry_id: str, library: LibraryDep) -> Response:
    entry = library.load(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Artifact set not found")
    filename = re.sub(r"[^A-Za-z0-9_-]+", "-", entry.name).strip("-") or "artifacts"
    return Response(
        content=build_export_zip(entry),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}.zip"'},
    )


@router.delete("/{entry_id}", status_code=204)
def delete_artifact_set(entry_id: str, library: LibraryDep) -> None:
    if not library.delete(entry_id):
        raise HTTPException(status_code=404, detail="Artifact set not found")
