"""
Key/value persistence for generated artifacts.

Stores only support whole-value operations: callers read, modify and write full
records, and the last writer wins. Every backend failure surfaces as
`StorageError`.
"""
import logging
import uuid
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from creaticon.agent.artifacts import Artifact, SavedArtifactSet, TargetKind, utc_now
from creaticon.agent.errors import StorageError
from creaticon.core.config import Settings
from creaticon.models import StoredValue

logger = logging.getLogger(__name__)

LIBRARY_PREFIX = "library:"


class ArtifactStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def list_by_prefix(self, prefix: str) -> list[str]: ...


class InMemoryArtifactStore:
    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def list_by_prefix(self, prefix: str) -> list[str]:
        return sorted(key for key in self._values if key.startswith(prefix))


class SqlArtifactStore:
    """Stores each value as one `StoredValue` row."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def get(self, key: str) -> str | None:
        try:
            with Session(self.engine) as session:
                row = session.get(StoredValue, key)
                return row.value if row else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            with Session(self.engine) as session:
                row = session.get(StoredValue, key)
                if row is None:
                    row = StoredValue(key=key, value=value)
                else:
                    row.value = value
                    row.updated_at = utc_now()
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            with Session(self.engine) as session:
                row = session.get(StoredValue, key)
                if row is not None:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to remove {key}: {exc}") from exc

    def list_by_prefix(self, prefix: str) -> list[str]:
        try:
            with Session(self.engine) as session:
                statement = (
                    select(StoredValue.key)
                    .where(col(StoredValue.key).startswith(prefix, autoescape=True))
                    .order_by(StoredValue.key)
                )
                return list(session.exec(statement).all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list keys under {prefix}: {exc}") from exc


def build_store(config: Settings) -> ArtifactStore:
    if config.ARTIFACT_STORE == "sql":
        from creaticon.core.db import get_engine, init_db

        engine = get_engine()
        init_db(engine)
        return SqlArtifactStore(engine)
    return InMemoryArtifactStore()


class ArtifactLibrary:
    """Named artifact sets saved to a store. Saves raise; reads degrade to empty results."""

    def __init__(self, store: ArtifactStore):
        self.store = store

    def save(
        self,
        name: str,
        kind: TargetKind,
        artifacts: list[Artifact],
        *,
        description: str | None = None,
        tags: list[str] | None = None,
    ) -> SavedArtifactSet:
        entry = SavedArtifactSet(
            id=uuid.uuid4().hex,
            name=name,
            kind=kind,
            description=description,
            artifacts=artifacts,
            tags=tags or [],
        )
        self.store.set(f"{LIBRARY_PREFIX}{entry.id}", entry.model_dump_json())
        logger.info("Saved artifact set %s (%s, %s artifacts).", entry.id, kind, len(artifacts))
        return entry

    def load(self, entry_id: str) -> SavedArtifactSet | None:
        try:
            raw = self.store.get(f"{LIBRARY_PREFIX}{entry_id}")
        except StorageError as exc:
            logger.warning("Could not load artifact set %s: %s", entry_id, exc)
            return None
        if raw is None:
            return None
        try:
            return SavedArtifactSet.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Stored artifact set %s is corrupt: %s", entry_id, exc)
            return None

    def list_entries(self, kind: TargetKind | None = None) -> list[SavedArtifactSet]:
        try:
            keys = self.store.list_by_prefix(LIBRARY_PREFIX)
        except StorageError as exc:
            logger.warning("Could not list the artifact library: %s", exc)
            return []
        entries = []
        for key in keys:
            entry = self.load(key[len(LIBRARY_PREFIX):])
            if entry is None or (kind is not None and entry.kind != kind):
                continue
            entries.append(entry)
        return sorted(entries, key=lambda e: e.saved_at, reverse=True)

    def delete(self, entry_id: str) -> bool:
        key = f"{LIBRARY_PREFIX}{entry_id}"
        try:
            if self.store.get(key) is None:
                return False
            self.store.remove(key)
        except StorageError as exc:
            logger.warning("Could not delete artifact set %s: %s", entry_id, exc)
            return False
        return True
