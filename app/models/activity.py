from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class ActivityLog(SQLModel, table=True):
    __tablename__ = "activity_logs"
    id: int | None = Field(default=None, primary_key=True)
    session_id: str = Field(index=True)
    user_id: str | None = Field(default=None, index=True)
    activity_type: str
    path: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now, index=True)
