from datetime import date

from pydantic import BaseModel, Field, model_validator

from app.services.slot_engine import ProcessedTimeSlots, StatusType, required_slots_for


class TimeSlotOut(BaseModel):
    id: str
    time: str
    minutes: int
    is_selected: bool
    is_disabled: bool
    is_highlighted: bool


class ValidationStatusOut(BaseModel):
    is_valid: bool
    message: str | None = None
    type: StatusType | None = None


class ProcessedSlotsResponse(BaseModel):
    required_slots: int
    time_slots: list[TimeSlotOut]
    validation_status: ValidationStatusOut

    @classmethod
    def from_processed(cls, processed: ProcessedTimeSlots, required_slots: int) -> "ProcessedSlotsResponse":
        status = processed.validation_status
        return cls(
            required_slots=required_slots,
            time_slots=[
                TimeSlotOut(
                    id=s.id,
                    time=s.time,
                    minutes=s.minutes,
                    is_selected=s.is_selected,
                    is_disabled=s.is_disabled,
                    is_highlighted=s.is_highlighted,
                )
                for s in processed.time_slots
            ],
            validation_status=ValidationStatusOut(is_valid=status.is_valid, message=status.message, type=status.type),
        )


class EvaluateSlotsRequest(BaseModel):
    available_time_slots: list[str] = Field(default_factory=list)
    selected_date: date | None = None
    selected_time_slot: str | None = None
    total_duration_minutes: int | None = Field(default=None, gt=0)
    required_slots: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _duration_given(self) -> "EvaluateSlotsRequest":
        if self.total_duration_minutes is None and self.required_slots is None:
            raise ValueError("Provide total_duration_minutes or required_slots")
        return self

    def resolved_required_slots(self) -> int:
        if self.required_slots is not None:
            return self.required_slots
        return required_slots_for(self.total_duration_minutes or 0)


class AvailableDaysResponse(BaseModel):
    professional_id: int
    timezone: str
    days: list[str]
