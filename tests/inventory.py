import pytest
from conftest import at
from pytest_assume.plugin import assume

from adherence.helpers.exceptions import DependencyUnavailableError
from adherence.helpers.scheduler import ReminderScheduler
from adherence.models.medicine import MedicineModel
from adherence.models.owner import CaregiverModel, OwnerModel
from adherence.persistence.console import ConsoleNotification
from adherence.persistence.memory import MemoryStore


@pytest.mark.asyncio(loop_scope="session")
async def test_refill(
    medicine: MedicineModel,
    scheduler: ReminderScheduler,
    seeded: MemoryStore,
) -> None:
    """
    Test refills, with an explicit amount or the medicine default one.
    """
    current = await scheduler.ledger.refill(medicine.medicine_id, 10, at=at(9, 0))
    assume(current.remaining_doses == 15)
    assume(current.last_refill_at == at(9, 0))

    current = await scheduler.ledger.refill(medicine.medicine_id)
    assume(current.remaining_doses == 45)

    for amount in (0, -5):
        with pytest.raises(ValueError):
            await scheduler.ledger.refill(medicine.medicine_id, amount)
    current = await seeded.medicine_get(medicine.medicine_id)
    assume(current and current.remaining_doses == 45)


@pytest.mark.asyncio(loop_scope="session")
async def test_consume(
    medicine: MedicineModel,
    scheduler: ReminderScheduler,
    seeded: MemoryStore,  # noqa: ARG001
) -> None:
    """
    Test fractional doses, floored at zero.
    """
    for expected in (4.5, 4):
        current = await scheduler.ledger.consume(medicine.medicine_id, 0.5)
        assume(current.remaining_doses == expected)
    current = await scheduler.ledger.consume(medicine.medicine_id, 10)
    assume(current.remaining_doses == 0)
    assume(scheduler.ledger.is_low_stock(current))

    with pytest.raises(DependencyUnavailableError):
        await scheduler.ledger.consume(medicine.owner_id, 1)


@pytest.mark.parametrize(
    "remaining_doses, expected",
    [
        pytest.param(3, False, id="above"),
        pytest.param(2, True, id="equal"),
        pytest.param(0, True, id="empty"),
    ],
)
def test_is_low_stock(
    medicine: MedicineModel,
    remaining_doses: float,
    expected: bool,
) -> None:
    medicine.remaining_doses = remaining_doses
    assert medicine.is_low_stock() == expected


@pytest.mark.asyncio(loop_scope="session")
async def test_scan_nag(
    gateway: ConsoleNotification,
    medicine: MedicineModel,
    owner: OwnerModel,
    scheduler: ReminderScheduler,
    store: MemoryStore,
) -> None:
    """
    Test low stock is notified on every scan while it stays low.

    Steps:
    1. Store a low medicine, and one opted out of refill reminders
    2. Scan twice, both scans notify the low medicine only
    3. Refill, next scan is silent
    """
    owner.caregivers.append(
        CaregiverModel(
            address="carol@example.com",
            notify_on_low_inventory=True,
            notify_on_missed=False,
        )
    )
    await store.owner_set(owner)
    medicine.remaining_doses = 1
    await store.medicine_set(medicine)
    await store.medicine_set(
        MedicineModel(
            name="Vitamin D",
            owner_id=owner.owner_id,
            refill_reminder=False,
            remaining_doses=0,
            times=["12:00"],
        )
    )

    for _ in range(2):
        gateway.outbox.clear()
        report = await scheduler.ledger.scan_low_inventory(at(9, 0))
        assume(report.processed == 1)
        assume(report.sent_notifications == 2)
        assume(
            [address for address, _, _ in gateway.outbox]
            == [owner.email, "carol@example.com"]
        )
        _, subject, body = gateway.outbox[0]
        assume("Metformin" in subject)
        assume("1 dose(s)" in body)

    await scheduler.ledger.refill(medicine.medicine_id, 30)
    gateway.outbox.clear()
    report = await scheduler.ledger.scan_low_inventory(at(10, 0))
    assume(report.processed == 0)
    assume(not gateway.outbox)


@pytest.mark.asyncio(loop_scope="session")
async def test_scan_cadence(
    medicine: MedicineModel,
    scheduler: ReminderScheduler,
    store: MemoryStore,
    owner: OwnerModel,
) -> None:
    """
    Test the scan runs on the hour only, with the default interval.
    """
    await store.owner_set(owner)
    medicine.remaining_doses = 1
    await store.medicine_set(medicine)

    report = await scheduler.tick(at(9, 30))
    assume(report.inventory is None)
    report = await scheduler.tick(at(10, 0))
    assume(report.inventory and report.inventory.processed == 1)
    assume(report.inventory and report.inventory.sent_notifications == 1)
