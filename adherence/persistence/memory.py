import asyncio
from datetime import date, datetime
from uuid import UUID

from adherence.helpers.logging import logger
from adherence.models.medicine import MedicineModel
from adherence.models.owner import OwnerModel
from adherence.models.readiness import ReadinessEnum
from adherence.models.reminder import ReminderEventModel, StatusEnum
from adherence.persistence.istore import IStore


class MemoryStore(IStore):
    """
    A simple in-memory store.

    A single lock serializes the writes, which makes each operation atomic. Objects are copied in and out, callers never share references with the store.
    """

    _lock: asyncio.Lock
    _medicines: dict[UUID, MedicineModel]
    _owners: dict[UUID, OwnerModel]
    _reminder_keys: dict[tuple[UUID, date, str], UUID]
    _reminders: dict[UUID, ReminderEventModel]

    def __init__(self):
        logger.info("Using memory store, data will be lost on restart")
        self._lock = asyncio.Lock()
        self._medicines = {}
        self._owners = {}
        self._reminder_keys = {}
        self._reminders = {}

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the memory store.
        """
        return ReadinessEnum.OK  # Always ready, it's memory :)

    async def medicine_get(self, medicine_id: UUID) -> MedicineModel | None:
        medicine = self._medicines.get(medicine_id)
        return medicine.model_copy(deep=True) if medicine else None

    async def medicine_list_active(self) -> list[MedicineModel]:
        return [
            medicine.model_copy(deep=True)
            for medicine in self._medicines.values()
            if medicine.active
        ]

    async def medicine_set(self, medicine: MedicineModel) -> MedicineModel:
        async with self._lock:
            self._medicines[medicine.medicine_id] = medicine.model_copy(deep=True)
        return medicine

    async def medicine_consume(
        self,
        medicine_id: UUID,
        amount: float,
        at: datetime,
    ) -> MedicineModel | None:
        async with self._lock:
            medicine = self._medicines.get(medicine_id)
            if not medicine:
                return None
            medicine.remaining_doses = max(0, medicine.remaining_doses - amount)
            medicine.last_consumed_at = at
            return medicine.model_copy(deep=True)

    async def medicine_refill(
        self,
        medicine_id: UUID,
        amount: float,
        at: datetime,
    ) -> MedicineModel | None:
        async with self._lock:
            medicine = self._medicines.get(medicine_id)
            if not medicine:
                return None
            medicine.remaining_doses = max(0, medicine.remaining_doses + amount)
            medicine.last_refill_at = at
            return medicine.model_copy(deep=True)

    async def owner_get(self, owner_id: UUID) -> OwnerModel | None:
        owner = self._owners.get(owner_id)
        return owner.model_copy(deep=True) if owner else None

    async def owner_set(self, owner: OwnerModel) -> OwnerModel:
        async with self._lock:
            self._owners[owner.owner_id] = owner.model_copy(deep=True)
        return owner

    async def reminder_get(self, event_id: UUID) -> ReminderEventModel | None:
        event = self._reminders.get(event_id)
        return event.model_copy(deep=True) if event else None

    async def reminder_create_if_absent(
        self,
        event: ReminderEventModel,
    ) -> tuple[ReminderEventModel, bool]:
        key = (event.medicine_id, event.scheduled_day, str(event.scheduled_time))
        async with self._lock:
            existing_id = self._reminder_keys.get(key)
            if existing_id:
                return self._reminders[existing_id].model_copy(deep=True), False
            self._reminder_keys[key] = event.event_id
            self._reminders[event.event_id] = event.model_copy(deep=True)
        return event, True

    async def reminder_search_pending_older_than(
        self,
        cutoff: datetime,
    ) -> list[ReminderEventModel]:
        return sorted(
            (
                event.model_copy(deep=True)
                for event in self._reminders.values()
                if event.status == StatusEnum.PENDING and event.scheduled_at < cutoff
            ),
            key=lambda event: event.scheduled_at,
        )

    async def reminder_search_all(
        self,
        owner_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ReminderEventModel]:
        return sorted(
            (
                event.model_copy(deep=True)
                for event in self._reminders.values()
                if event.owner_id == owner_id
                and (not start or event.scheduled_at >= start)
                and (not end or event.scheduled_at <= end)
            ),
            key=lambda event: event.scheduled_at,
            reverse=True,
        )

    async def reminder_transition(
        self,
        event_id: UUID,
        from_status: StatusEnum,
        to_status: StatusEnum,
        at: datetime,
        note: str | None = None,
    ) -> ReminderEventModel | None:
        async with self._lock:
            event = self._reminders.get(event_id)
            if not event or event.status != from_status:
                return None
            event.status = to_status
            field = self._status_field(to_status)
            if field:
                setattr(event, field, at)
            if note is not None:
                event.note = note
            return event.model_copy(deep=True)
