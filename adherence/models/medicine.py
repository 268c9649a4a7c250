from datetime import datetime
from enum import Enum
from math import floor
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, ValidationInfo, model_validator

from adherence.helpers.exceptions import MalformedScheduleEntryError
from adherence.helpers.pydantic_types.time_of_day import TimeOfDay, parse_times

LENIENT_CONTEXT = {"lenient_times": True}
"""
Validation context for records loaded from a store.

Malformed times are dropped and listed in `malformed_times` instead of failing the whole record.
"""


class FrequencyEnum(str, Enum):
    CUSTOM = "custom"
    DAILY = "daily"
    WEEKLY = "weekly"


class MedicineModel(BaseModel):
    # Immutable fields
    medicine_id: UUID = Field(default_factory=uuid4, frozen=True)
    owner_id: UUID = Field(frozen=True)
    # Editable fields
    active: bool = True
    dosage: str | None = None
    dose_size: float = Field(default=1, gt=0)
    frequency: FrequencyEnum = FrequencyEnum.DAILY
    last_consumed_at: datetime | None = None
    last_refill_at: datetime | None = None
    low_stock_threshold: float = Field(default=5, ge=0)
    malformed_times: list[str] = []
    """Raw times which are not valid, kept so each tick reports them."""
    name: str
    refill_amount: float = Field(default=30, ge=0)
    refill_reminder: bool = True
    remaining_doses: float = Field(default=0, ge=0)
    times: list[TimeOfDay] = []

    @model_validator(mode="before")
    @classmethod
    def _validate_times(cls, data: Any, info: ValidationInfo) -> Any:
        """
        Sort and deduplicate the configured times.

        Malformed times are rejected, except in lenient mode where they are moved to `malformed_times`, next to the ones already listed.
        """
        if not isinstance(data, dict) or not isinstance(data.get("times"), list):
            return data
        times, malformed = parse_times(data["times"])
        if malformed and not (info.context or {}).get("lenient_times"):
            raise MalformedScheduleEntryError(malformed[0])
        previous = data.get("malformed_times") or []
        return {
            **data,
            "malformed_times": list(dict.fromkeys([*previous, *malformed])),
            "times": times,
        }

    def is_low_stock(self) -> bool:
        return self.remaining_doses <= self.low_stock_threshold

    def days_remaining(self) -> int:
        """
        Number of full days the remaining doses will last, based on the schedule.

        Weekly and custom schedules are assumed to list the times of a whole week.
        """
        if not self.remaining_doses or not self.times:
            return 0
        daily_consumption = len(self.times) * self.dose_size
        if self.frequency != FrequencyEnum.DAILY:
            daily_consumption /= 7
        return floor(self.remaining_doses / daily_consumption)
