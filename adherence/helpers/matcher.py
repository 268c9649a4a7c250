from datetime import UTC, date, datetime, tzinfo

from pydantic import BaseModel

from adherence.helpers.logging import logger
from adherence.helpers.monitoring import counter_add, schedule_malformed
from adherence.helpers.pydantic_types.time_of_day import TimeOfDay
from adherence.models.medicine import MedicineModel


class ScheduleMatchModel(BaseModel):
    medicine: MedicineModel
    scheduled_at: datetime
    """Local date and configured time, in UTC."""
    scheduled_day: date
    """Local calendar day, the repeated hour of a DST change keeps the same day."""
    time: TimeOfDay


def local_now(now: datetime, tz: tzinfo | None) -> datetime:
    """
    Resolve an instant to the deployment wall-clock.

    The system local timezone is used if `tz` is `None`.
    """
    if not now.tzinfo:
        raise ValueError("now must be timezone aware")
    if tz is None:
        return now.astimezone()
    return now.astimezone(tz)


def match_due(
    local: datetime,
    medicines: list[MedicineModel],
) -> tuple[list[ScheduleMatchModel], int]:
    """
    Select the configured times equal to the current wall-clock hour and minute.

    Comparison is exact, a time is matched only during its own minute. Returns the matches and the number of malformed entries skipped.
    """
    # Scheduled time is the current minute, as the configured time matches it
    scheduled_at = local.replace(second=0, microsecond=0).astimezone(UTC)
    matches: list[ScheduleMatchModel] = []
    malformed = 0

    for medicine in medicines:
        if not medicine.active:
            continue

        for value in medicine.malformed_times:
            logger.warning(
                "MalformedScheduleEntry %r for medicine %s, skipping it",
                value,
                medicine.medicine_id,
            )
        malformed += len(medicine.malformed_times)

        for time in medicine.times:
            if time.matches(hour=local.hour, minute=local.minute):
                matches.append(
                    ScheduleMatchModel(
                        medicine=medicine,
                        scheduled_at=scheduled_at,
                        scheduled_day=local.date(),
                        time=time,
                    )
                )

    counter_add(schedule_malformed, malformed)
    return matches, malformed
