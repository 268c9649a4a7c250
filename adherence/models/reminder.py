from datetime import UTC, date, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from adherence.helpers.pydantic_types.time_of_day import TimeOfDay


class StatusEnum(str, Enum):
    MISSED = "missed"
    PENDING = "pending"
    SKIPPED = "skipped"
    TAKEN = "taken"

    @property
    def is_terminal(self) -> bool:
        return self != StatusEnum.PENDING


class ReminderEventModel(BaseModel):
    # Immutable fields
    event_id: UUID = Field(default_factory=uuid4, frozen=True)
    fired_at: datetime = Field(default_factory=lambda: datetime.now(UTC), frozen=True)
    medicine_id: UUID = Field(frozen=True)
    owner_id: UUID = Field(frozen=True)
    scheduled_at: datetime = Field(frozen=True)
    scheduled_day: date = Field(frozen=True)
    """Local calendar day of the reminder, with `scheduled_time` and `medicine_id` it identifies the reminder."""
    scheduled_time: TimeOfDay = Field(frozen=True)
    # Editable fields
    missed_at: datetime | None = None
    note: str | None = None
    skipped_at: datetime | None = None
    status: StatusEnum = StatusEnum.PENDING
    taken_at: datetime | None = None

    @field_validator("scheduled_at")
    @classmethod
    def _validate_scheduled_at(cls, scheduled_at: datetime) -> datetime:
        """
        Normalize to UTC and to the minute.
        """
        if not scheduled_at.tzinfo:
            raise ValueError("scheduled_at must be timezone aware")
        return scheduled_at.astimezone(UTC).replace(second=0, microsecond=0)


class AdherenceSummaryModel(BaseModel):
    adherence_rate: float
    """Share of taken doses, in percent."""
    missed: int
    pending: int
    skipped: int
    taken: int
    total: int
