from datetime import datetime, timezone

from sqlalchemy import DateTime, Text
from sqlmodel import Field, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


# Whole-value key/value rows backing the SQL artifact store
class StoredValue(SQLModel, table=True):
    key: str = Field(primary_key=True, max_length=255)
    value: str = Field(sa_type=Text)  # type: ignore
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
