import asyncio
from calendar import day_name
from collections.abc import Callable, Hashable
from datetime import UTC, date, datetime, time, timedelta
from math import ceil
from uuid import UUID

from adherence.models.analytics import (
    AdherenceAnalyticsModel,
    DayOfWeekRateModel,
    DayPeriodEnum,
    DayPeriodRateModel,
    MedicineRateModel,
    PeriodEnum,
    TrendWeekModel,
)
from adherence.models.medicine import MedicineModel
from adherence.models.reminder import (
    AdherenceSummaryModel,
    ReminderEventModel,
    StatusEnum,
)
from adherence.persistence.istore import IStore


def summarize(events: list[ReminderEventModel]) -> AdherenceSummaryModel:
    """
    Count the reminders per status.

    Adherence rate is the share of taken reminders over all of them, in percent, or 0 without reminders.
    """
    counts = {status: 0 for status in StatusEnum}
    for event in events:
        counts[event.status] += 1
    total = len(events)
    return AdherenceSummaryModel(
        adherence_rate=_rate(counts[StatusEnum.TAKEN], total),
        missed=counts[StatusEnum.MISSED],
        pending=counts[StatusEnum.PENDING],
        skipped=counts[StatusEnum.SKIPPED],
        taken=counts[StatusEnum.TAKEN],
        total=total,
    )


def by_day_of_week(events: list[ReminderEventModel]) -> list[DayOfWeekRateModel]:
    """
    Adherence per local weekday, from Monday to Sunday.
    """
    groups = _group(events, lambda event: event.scheduled_day.weekday())
    res = []
    for weekday in range(7):
        taken, total = _counts(groups.get(weekday, []))
        res.append(
            DayOfWeekRateModel(
                adherence_rate=_rate(taken, total),
                name=day_name[weekday],
                taken=taken,
                total=total,
                weekday=weekday,
            )
        )
    return res


def by_time_of_day(events: list[ReminderEventModel]) -> list[DayPeriodRateModel]:
    """
    Adherence per period of the day, from the configured time of the reminders.
    """
    groups = _group(
        events, lambda event: DayPeriodEnum.from_time(event.scheduled_time)
    )
    res = []
    for period in (
        DayPeriodEnum.MORNING,
        DayPeriodEnum.AFTERNOON,
        DayPeriodEnum.EVENING,
        DayPeriodEnum.NIGHT,
    ):
        taken, total = _counts(groups.get(period, []))
        res.append(
            DayPeriodRateModel(
                adherence_rate=_rate(taken, total),
                period=period,
                taken=taken,
                total=total,
            )
        )
    return res


def by_medicine(
    events: list[ReminderEventModel],
    medicines: dict[UUID, MedicineModel],
) -> list[MedicineRateModel]:
    """
    Adherence per medicine, best first.

    Medicines without reminders are not listed.
    """
    groups = _group(events, lambda event: event.medicine_id)
    res = []
    for medicine_id, group in groups.items():
        medicine = medicines.get(medicine_id)
        res.append(
            MedicineRateModel(
                **summarize(group).model_dump(),
                dosage=medicine.dosage if medicine else None,
                medicine_id=medicine_id,
                name=medicine.name if medicine else None,
            )
        )
    return sorted(res, key=lambda item: (-item.adherence_rate, item.name or ""))


def weekly_trend(
    events: list[ReminderEventModel],
    start: date,
    end: date,
) -> list[TrendWeekModel]:
    """
    Adherence per week, from `start` to `end` included.

    Weeks start on `start`, the last one is cut at `end`.
    """
    weeks = ceil(((end - start).days + 1) / 7)
    res = []
    for week in range(weeks):
        week_start = start + timedelta(days=week * 7)
        week_end = min(week_start + timedelta(days=6), end)
        taken, total = _counts(
            [
                event
                for event in events
                if week_start <= event.scheduled_day <= week_end
            ]
        )
        res.append(
            TrendWeekModel(
                adherence_rate=_rate(taken, total),
                taken=taken,
                total=total,
                week_end=week_end,
                week_start=week_start,
            )
        )
    return res


async def owner_summary(
    store: IStore,
    owner_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> AdherenceSummaryModel:
    events = await store.reminder_search_all(
        end=end,
        owner_id=owner_id,
        start=start,
    )
    return summarize(events)


async def owner_analytics(
    store: IStore,
    owner_id: UUID,
    today: date,
    period: PeriodEnum = PeriodEnum.DAYS_30,
) -> AdherenceAnalyticsModel:
    """
    Adherence breakdowns of an owner, over the period ending on `today`.

    Reminders are selected by their local day, `today` must be the local date of the deployment.
    """
    start = period.start(today)
    # Search a day wider on each side, any timezone offset fits in it
    candidates = await store.reminder_search_all(
        end=datetime.combine(today + timedelta(days=1), time.max, tzinfo=UTC),
        owner_id=owner_id,
        start=datetime.combine(start - timedelta(days=1), time.min, tzinfo=UTC),
    )
    events = [event for event in candidates if start <= event.scheduled_day <= today]

    medicine_ids = list({event.medicine_id for event in events})
    found = await asyncio.gather(
        *[store.medicine_get(medicine_id) for medicine_id in medicine_ids]
    )
    medicines = {medicine.medicine_id: medicine for medicine in found if medicine}

    return AdherenceAnalyticsModel(
        by_medicine=by_medicine(events, medicines),
        day_of_week=by_day_of_week(events),
        end=today,
        overall=summarize(events),
        period=period,
        start=start,
        time_of_day=by_time_of_day(events),
        trend=weekly_trend(events, start, today),
    )


def _group(
    events: list[ReminderEventModel],
    key: Callable[[ReminderEventModel], Hashable],
) -> dict:
    groups: dict = {}
    for event in events:
        groups.setdefault(key(event), []).append(event)
    return groups


def _counts(events: list[ReminderEventModel]) -> tuple[int, int]:
    return sum(1 for event in events if event.status == StatusEnum.TAKEN), len(events)


def _rate(taken: int, total: int) -> float:
    return round(taken / total * 100, 2) if total else 0
