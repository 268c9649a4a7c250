import json
from datetime import UTC, datetime
from os import environ

# Config must be set before the package is loaded, it is read at import time
environ["CONFIG_JSON"] = json.dumps(
    {
        "database": {"mode": "memory"},
        "monitoring": {"logging": {"app_level": "DEBUG"}},
        "notification": {"mode": "console"},
        "scheduler": {"timezone": "UTC"},
    }
)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from adherence.helpers.config_models.notification import ConsoleModel  # noqa: E402
from adherence.helpers.config_models.scheduler import SchedulerModel  # noqa: E402
from adherence.helpers.scheduler import ReminderScheduler  # noqa: E402
from adherence.models.medicine import MedicineModel  # noqa: E402
from adherence.models.owner import CaregiverModel, OwnerModel  # noqa: E402
from adherence.persistence.console import ConsoleNotification  # noqa: E402
from adherence.persistence.memory import MemoryStore  # noqa: E402


def at(hour: int, minute: int, second: int = 0, day: int = 19) -> datetime:
    """
    Instant on the test day, in UTC which is also the configured wall-clock.
    """
    return datetime(2026, 10, day, hour, minute, second, tzinfo=UTC)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def gateway() -> ConsoleNotification:
    return ConsoleNotification(ConsoleModel())


@pytest.fixture
def scheduler_config() -> SchedulerModel:
    return SchedulerModel(
        missed_sweep_interval_min=1,  # Sweep on every tick
        timezone="UTC",
    )


@pytest.fixture
def scheduler(
    gateway: ConsoleNotification,
    scheduler_config: SchedulerModel,
    store: MemoryStore,
) -> ReminderScheduler:
    return ReminderScheduler(
        config=scheduler_config,
        notification=gateway,
        store=store,
    )


@pytest.fixture
def owner() -> OwnerModel:
    return OwnerModel(
        caregivers=[
            CaregiverModel(
                address="alice@example.com",
                name="Alice",
                notify_on_adherence=False,
                notify_on_missed=True,
            ),
            CaregiverModel(
                address="bob@example.com",
                name="Bob",
                notify_on_adherence=True,
                notify_on_missed=False,
            ),
        ],
        email="owner@example.com",
        name="Olivia",
    )


@pytest.fixture
def medicine(owner: OwnerModel) -> MedicineModel:
    return MedicineModel(
        dosage="500 mg",
        dose_size=1,
        low_stock_threshold=2,
        name="Metformin",
        owner_id=owner.owner_id,
        remaining_doses=5,
        times=["08:00"],
    )


@pytest_asyncio.fixture(loop_scope="session")
async def seeded(
    medicine: MedicineModel,
    owner: OwnerModel,
    store: MemoryStore,
) -> MemoryStore:
    await store.owner_set(owner)
    await store.medicine_set(medicine)
    return store
