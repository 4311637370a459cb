from pydantic import BaseModel, ConfigDict, Field as PydanticField
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class WorkingHoursEntry(BaseModel):
    """One weekday as stored in ``professional_profiles.working_hours``."""

    model_config = ConfigDict(populate_by_name=True)

    day: str
    enabled: bool = False
    start_time: str | None = PydanticField(default=None, alias="startTime")
    end_time: str | None = PydanticField(default=None, alias="endTime")


class ProfessionalProfile(SQLModel, table=True):
    __tablename__ = "professional_profiles"
    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True, index=True)  # auth provider subject
    display_name: str | None = None
    timezone: str = "UTC"
    working_hours: list[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    cancellation_policy_enabled: bool = False
    cancellation_24h_charge_percentage: float | None = None
    cancellation_48h_charge_percentage: float | None = None
    stripe_account_id: str | None = None

    def parsed_working_hours(self) -> list[WorkingHoursEntry]:
        return [WorkingHoursEntry.model_validate(h) for h in (self.working_hours or [])]


class CancellationPolicyUpdate(SQLModel):
    enabled: bool
    charge_24h_percentage: float | None = Field(default=None, ge=0, le=100)
    charge_48h_percentage: float | None = Field(default=None, ge=0, le=100)


class ProfessionalPolicyPublic(SQLModel):
    id: int
    cancellation_policy_enabled: bool
    cancellation_24h_charge_percentage: float | None = None
    cancellation_48h_charge_percentage: float | None = None
