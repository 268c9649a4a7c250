from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from adherence.helpers.monitoring import start_as_current_span
from adherence.models.medicine import MedicineModel
from adherence.models.owner import OwnerModel
from adherence.models.readiness import ReadinessEnum
from adherence.models.reminder import ReminderEventModel, StatusEnum


class IStore(ABC):
    """
    Persistence of medicines, owners and reminder events.

    Implementations guarantee the atomicity of `reminder_create_if_absent`, `reminder_transition`, `medicine_consume` and `medicine_refill`.
    """

    @abstractmethod
    @start_as_current_span("store_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("store_medicine_get")
    async def medicine_get(self, medicine_id: UUID) -> MedicineModel | None:
        pass

    @abstractmethod
    @start_as_current_span("store_medicine_list_active")
    async def medicine_list_active(self) -> list[MedicineModel]:
        """
        List the active medicines.

        Records are validated leniently, malformed times are listed in `MedicineModel.malformed_times`.
        """

    @abstractmethod
    @start_as_current_span("store_medicine_set")
    async def medicine_set(self, medicine: MedicineModel) -> MedicineModel:
        pass

    @abstractmethod
    @start_as_current_span("store_medicine_consume")
    async def medicine_consume(
        self,
        medicine_id: UUID,
        amount: float,
        at: datetime,
    ) -> MedicineModel | None:
        """
        Decrement the remaining doses, floored at zero.

        Returns `None` if the medicine does not exist.
        """

    @abstractmethod
    @start_as_current_span("store_medicine_refill")
    async def medicine_refill(
        self,
        medicine_id: UUID,
        amount: float,
        at: datetime,
    ) -> MedicineModel | None:
        pass

    @abstractmethod
    @start_as_current_span("store_owner_get")
    async def owner_get(self, owner_id: UUID) -> OwnerModel | None:
        pass

    @abstractmethod
    @start_as_current_span("store_owner_set")
    async def owner_set(self, owner: OwnerModel) -> OwnerModel:
        pass

    @abstractmethod
    @start_as_current_span("store_reminder_get")
    async def reminder_get(self, event_id: UUID) -> ReminderEventModel | None:
        pass

    @abstractmethod
    @start_as_current_span("store_reminder_create_if_absent")
    async def reminder_create_if_absent(
        self,
        event: ReminderEventModel,
    ) -> tuple[ReminderEventModel, bool]:
        """
        Create the reminder, unless one already exists for the same medicine, local day and configured time.

        Returns the stored reminder and `True` if it has been created by this call.
        """

    @abstractmethod
    @start_as_current_span("store_reminder_search_pending_older_than")
    async def reminder_search_pending_older_than(
        self,
        cutoff: datetime,
    ) -> list[ReminderEventModel]:
        pass

    @abstractmethod
    @start_as_current_span("store_reminder_search_all")
    async def reminder_search_all(
        self,
        owner_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ReminderEventModel]:
        """
        List the reminders of an owner, most recent scheduled time first.
        """

    @abstractmethod
    @start_as_current_span("store_reminder_transition")
    async def reminder_transition(
        self,
        event_id: UUID,
        from_status: StatusEnum,
        to_status: StatusEnum,
        at: datetime,
        note: str | None = None,
    ) -> ReminderEventModel | None:
        """
        Change the status of a reminder, only if its current status is `from_status`.

        The timestamp matching the new status (`taken_at`, `skipped_at`, `missed_at`) is set to `at`. Returns `None` on conflict or if the reminder does not exist.
        """

    @staticmethod
    def _status_field(status: StatusEnum) -> str | None:
        """
        Name of the timestamp field set when entering a status.
        """
        return {
            StatusEnum.MISSED: "missed_at",
            StatusEnum.SKIPPED: "skipped_at",
            StatusEnum.TAKEN: "taken_at",
        }.get(status)
