from calendar import monthrange
from datetime import date, timedelta
from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from adherence.helpers.pydantic_types.time_of_day import TimeOfDay
from adherence.models.reminder import AdherenceSummaryModel


class PeriodEnum(str, Enum):
    DAYS_7 = "7days"
    DAYS_30 = "30days"
    DAYS_90 = "90days"
    MONTHS_6 = "6months"
    YEAR_1 = "1year"

    def start(self, end: date) -> date:
        """
        First day of the period ending on `end`.

        Months are calendar months, the day is clamped to the length of the target month.
        """
        match self:
            case PeriodEnum.DAYS_7:
                return end - timedelta(days=7)
            case PeriodEnum.DAYS_90:
                return end - timedelta(days=90)
            case PeriodEnum.MONTHS_6:
                return _months_before(end, 6)
            case PeriodEnum.YEAR_1:
                return _months_before(end, 12)
        return end - timedelta(days=30)


class DayPeriodEnum(str, Enum):
    AFTERNOON = "afternoon"
    EVENING = "evening"
    MORNING = "morning"
    NIGHT = "night"

    @classmethod
    def from_time(cls, time: TimeOfDay) -> "DayPeriodEnum":
        """
        Morning is 05:00 to 11:59, afternoon 12:00 to 16:59, evening 17:00 to 20:59 and night the rest.
        """
        if 5 <= time.hour < 12:
            return cls.MORNING
        if 12 <= time.hour < 17:
            return cls.AFTERNOON
        if 17 <= time.hour < 21:
            return cls.EVENING
        return cls.NIGHT


class RateModel(BaseModel):
    adherence_rate: float
    """Share of taken doses, in percent."""
    taken: int
    total: int


class DayOfWeekRateModel(RateModel):
    name: str
    weekday: int
    """Monday is 0, Sunday is 6."""


class DayPeriodRateModel(RateModel):
    period: DayPeriodEnum


class MedicineRateModel(AdherenceSummaryModel):
    dosage: str | None = None
    medicine_id: UUID
    name: str | None = None
    """Name of the medicine, `None` if it has been deleted."""


class TrendWeekModel(RateModel):
    week_end: date
    week_start: date


class AdherenceAnalyticsModel(BaseModel):
    by_medicine: list[MedicineRateModel]
    day_of_week: list[DayOfWeekRateModel]
    end: date
    overall: AdherenceSummaryModel
    period: PeriodEnum
    start: date
    time_of_day: list[DayPeriodRateModel]
    trend: list[TrendWeekModel]


def _months_before(day: date, months: int) -> date:
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    return day.replace(
        day=min(day.day, monthrange(year, month)[1]),
        month=month,
        year=year,
    )
