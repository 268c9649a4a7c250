from datetime import timedelta, tzinfo
from functools import cached_property

from pydantic import BaseModel, Field, field_validator
from pytz import UnknownTimeZoneError, timezone


class SchedulerModel(BaseModel):
    concurrency: int = Field(default=8, ge=1)
    """Maximum number of medicines processed at the same time within a tick."""
    grace_period_min: int = Field(default=30, ge=1)
    """Delay after the scheduled time before a pending reminder is declared missed."""
    low_inventory_scan_interval_min: int = Field(default=60, ge=1, le=60)
    missed_sweep_interval_min: int = Field(default=15, ge=1, le=60)
    stop_timeout_sec: int = Field(default=45, ge=1)
    """Time given to an in-flight tick to finish when the scheduler stops."""
    tick_interval_sec: int = Field(default=60, ge=1)
    timezone: str | None = None
    """IANA timezone of the wall-clock, system local time if not set."""

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            timezone(value)
        except UnknownTimeZoneError as e:
            raise ValueError(f'Unknown timezone "{value}"') from e
        return value

    @property
    def grace_period(self) -> timedelta:
        return timedelta(minutes=self.grace_period_min)

    @cached_property
    def tz(self) -> tzinfo | None:
        """
        Timezone used to resolve the wall-clock.

        Returns `None` when the system local timezone should be used.
        """
        if not self.timezone:
            return None
        return timezone(self.timezone)
