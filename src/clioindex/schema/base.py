from datetime import datetime, timezone
from uuid import uuid4
from sqlmodel import SQLModel, Field
from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UtcTimestamp(TypeDecorator):
    """
    Timezone-aware UTC datetimes on top of SQLite's naive DATETIME.

    Values are converted to UTC and stored without tzinfo; loaded values come
    back tagged as UTC. Naive inputs are taken to be UTC already.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_field():
    return Field(default_factory=utcnow, sa_type=UtcTimestamp)


def new_id() -> str:
    return str(uuid4())


class IdMixin(SQLModel):
    id: str = Field(default_factory=new_id, primary_key=True)


class TimestampMixin(SQLModel):
    created_at: datetime = timestamp_field()
