from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from creaticon.core.config import settings


def build_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


@lru_cache
def get_engine() -> Engine:
    return build_engine(settings.DATABASE_URL)


def init_db(engine: Engine) -> None:
    # Tables are created directly; there are no migrations for the key/value store.
    from creaticon import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
