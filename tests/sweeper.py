import pytest
from conftest import at
from pytest_assume.plugin import assume

from adherence.helpers.config_models.scheduler import SchedulerModel
from adherence.helpers.scheduler import ReminderScheduler
from adherence.models.medicine import MedicineModel
from adherence.models.owner import OwnerModel
from adherence.models.reminder import ReminderEventModel, StatusEnum
from adherence.persistence.console import ConsoleNotification
from adherence.persistence.memory import MemoryStore


def _recipients(gateway: ConsoleNotification) -> list[str]:
    return [address for address, _, _ in gateway.outbox]


@pytest.mark.asyncio(loop_scope="session")
async def test_caregiver_flags(
    gateway: ConsoleNotification,
    medicine: MedicineModel,
    owner: OwnerModel,
    seeded: MemoryStore,
    scheduler: ReminderScheduler,
) -> None:
    """
    Test missed notices go to the missed caregiver only, and adherence notices to the adherence caregiver only.

    Steps:
    1. Create two reminders, on two days
    2. Let the first one be missed
    3. Take the second one
    """
    # Missed
    await scheduler.tick(at(8, 0))
    gateway.outbox.clear()
    report = await scheduler.tick(at(8, 31))
    assume(report.sweep and report.sweep.processed == 1)
    assume(_recipients(gateway) == [owner.email, "alice@example.com"])
    _, subject, body = gateway.outbox[-1]
    assume("missed" in subject)
    assume("Metformin" in subject)
    assume("08:00" in body)

    # Taken
    await scheduler.tick(at(8, 0, day=20))
    events = await seeded.reminder_search_all(
        owner_id=owner.owner_id,
        start=at(0, 0, day=20),
    )
    gateway.outbox.clear()
    await scheduler.state_machine.mark_taken(events[0].event_id, now=at(8, 2, day=20))
    assume(_recipients(gateway) == ["bob@example.com"])
    _, subject, body = gateway.outbox[-1]
    assume("took" in subject)
    assume("08:02" in body)


@pytest.mark.asyncio(loop_scope="session")
async def test_grace_period(
    medicine: MedicineModel,
    seeded: MemoryStore,
    scheduler: ReminderScheduler,
) -> None:
    """
    Test a reminder is missed only when the grace period is exceeded.
    """
    await scheduler.tick(at(8, 0))

    report = await scheduler.tick(at(8, 30))
    assume(report.sweep and report.sweep.processed == 0)
    events = await seeded.reminder_search_all(medicine.owner_id)
    assume(events[0].status == StatusEnum.PENDING)

    report = await scheduler.tick(at(8, 31))
    assume(report.sweep and report.sweep.processed == 1)
    events = await seeded.reminder_search_all(medicine.owner_id)
    assume(events[0].status == StatusEnum.MISSED)

    # Not processed twice
    report = await scheduler.tick(at(8, 32))
    assume(report.sweep and report.sweep.processed == 0)


@pytest.mark.asyncio(loop_scope="session")
async def test_sweep_cadence(
    gateway: ConsoleNotification,
    seeded: MemoryStore,
) -> None:
    """
    Test the sweep runs only on its interval minutes.
    """
    scheduler = ReminderScheduler(
        config=SchedulerModel(
            missed_sweep_interval_min=15,
            timezone="UTC",
        ),
        notification=gateway,
        store=seeded,
    )
    await scheduler.tick(at(8, 0))

    report = await scheduler.tick(at(8, 36))
    assume(report.sweep is None)
    report = await scheduler.tick(at(8, 45))
    assume(report.sweep and report.sweep.processed == 1)


@pytest.mark.asyncio(loop_scope="session")
async def test_missing_owner(
    medicine: MedicineModel,
    scheduler: ReminderScheduler,
    store: MemoryStore,
) -> None:
    """
    Test a reminder whose owner is gone is still missed, and counted as an error.
    """
    await store.medicine_set(medicine)
    await scheduler.tick(at(8, 0))

    report = await scheduler.tick(at(8, 45))
    assume(report.sweep and report.sweep.processed == 1)
    assume(report.sweep and report.sweep.errors == 1)
    assume(report.errors == 1)
    events = await store.reminder_search_all(medicine.owner_id)
    assume(events[0].status == StatusEnum.MISSED)


@pytest.mark.asyncio(loop_scope="session")
async def test_lost_race(
    medicine: MedicineModel,
    seeded: MemoryStore,
    scheduler: ReminderScheduler,
) -> None:
    """
    Test a reminder taken after the sweep read it is left taken.
    """
    event, _ = await seeded.reminder_create_if_absent(
        ReminderEventModel(
            medicine_id=medicine.medicine_id,
            owner_id=medicine.owner_id,
            scheduled_at=at(8, 0),
            scheduled_day=at(8, 0).date(),
            scheduled_time="08:00",
        )
    )
    stale = (await seeded.reminder_search_pending_older_than(at(8, 31)))[0]
    await scheduler.state_machine.mark_taken(event.event_id, now=at(8, 30))

    assume(await scheduler.state_machine.mark_missed(stale, now=at(8, 31)) is None)
    current = await seeded.reminder_get(event.event_id)
    assume(current and current.status == StatusEnum.TAKEN)
    assume(current and not current.missed_at)
