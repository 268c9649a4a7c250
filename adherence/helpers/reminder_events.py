from datetime import UTC, datetime
from uuid import UUID

from adherence.helpers.exceptions import (
    DependencyUnavailableError,
    InvalidTransitionError,
    ReminderNotFoundError,
)
from adherence.helpers.inventory import InventoryLedger
from adherence.helpers.logging import logger
from adherence.helpers.monitoring import (
    SpanAttributeEnum,
    counter_add,
    reminder_missed,
    start_as_current_span,
)
from adherence.helpers.notifications import NotificationDispatcher
from adherence.models.medicine import MedicineModel
from adherence.models.notification import (
    AdherenceNotificationModel,
    DispatchReportModel,
    MissedNotificationModel,
)
from adherence.models.owner import OwnerModel
from adherence.models.reminder import ReminderEventModel, StatusEnum
from adherence.persistence.istore import IStore


class ReminderStateMachine:
    """
    Lifecycle of the reminder events.

    A reminder is created pending, then goes once to taken, skipped or missed. Terminal states never change. Side effects run only for the call which made the transition.
    """

    _dispatcher: NotificationDispatcher
    _ledger: InventoryLedger
    _store: IStore

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        ledger: InventoryLedger,
        store: IStore,
    ):
        self._dispatcher = dispatcher
        self._ledger = ledger
        self._store = store

    @start_as_current_span("reminder_mark_taken")
    async def mark_taken(
        self,
        event_id: UUID,
        now: datetime | None = None,
    ) -> ReminderEventModel:
        """
        Record the dose as taken.

        Stock is depleted by the dose size and caregivers are notified. Calling it again on a taken reminder returns it unchanged, without side effects.
        """
        now = now or datetime.now(UTC)
        event, changed = await self._transition(
            at=now,
            event_id=event_id,
            to_status=StatusEnum.TAKEN,
        )
        if not changed:
            logger.info("Reminder %s already taken", event_id)
            return event

        logger.info("Reminder %s taken", event_id)
        medicine = await self._store.medicine_get(event.medicine_id)
        if not medicine:
            logger.warning(
                "Medicine %s of reminder %s not found, skipping side effects",
                event.medicine_id,
                event_id,
            )
            return event

        # Side effects never roll back the transition
        try:
            await self._ledger.consume(
                amount=medicine.dose_size,
                at=now,
                medicine_id=medicine.medicine_id,
            )
        except Exception:
            logger.exception("Error depleting inventory for reminder %s", event_id)
        try:
            await self._dispatcher.dispatch(
                notification=AdherenceNotificationModel(
                    medicine_name=medicine.name,
                    scheduled_at=event.scheduled_at,
                    taken_at=now,
                ),
                owner=await self._owner(event),
            )
        except Exception:
            logger.exception("Error notifying adherence for reminder %s", event_id)
        return event

    @start_as_current_span("reminder_mark_skipped")
    async def mark_skipped(
        self,
        event_id: UUID,
        now: datetime | None = None,
        note: str | None = None,
    ) -> ReminderEventModel:
        """
        Record the dose as deliberately skipped.

        Stock is left unchanged.
        """
        event, changed = await self._transition(
            at=now or datetime.now(UTC),
            event_id=event_id,
            note=note,
            to_status=StatusEnum.SKIPPED,
        )
        if changed:
            logger.info("Reminder %s skipped", event_id)
        return event

    @start_as_current_span("reminder_mark_missed")
    async def mark_missed(
        self,
        event: ReminderEventModel,
        now: datetime,
    ) -> ReminderEventModel | None:
        """
        Record an overdue reminder as missed.

        Only the sweeper calls this. Returns `None` if the reminder is not pending anymore, for example because it has been taken in the meantime.
        """
        SpanAttributeEnum.REMINDER_ID.attribute(str(event.event_id))
        missed = await self._store.reminder_transition(
            at=now,
            event_id=event.event_id,
            from_status=StatusEnum.PENDING,
            to_status=StatusEnum.MISSED,
        )
        if not missed:
            logger.debug("Reminder %s is not pending anymore", event.event_id)
            return None
        logger.info(
            "Reminder %s scheduled at %s missed",
            event.event_id,
            event.scheduled_at,
        )
        counter_add(reminder_missed, 1)
        return missed

    @start_as_current_span("reminder_notify_missed")
    async def notify_missed(self, event: ReminderEventModel) -> DispatchReportModel:
        """
        Notify the owner and the caregivers of a missed reminder.

        Raises a `DependencyUnavailableError` if the medicine or the owner does not exist.
        """
        medicine = await self._medicine(event)
        return await self._dispatcher.dispatch(
            notification=MissedNotificationModel(
                medicine_name=medicine.name,
                missed_at=event.missed_at or datetime.now(UTC),
                scheduled_at=event.scheduled_at,
            ),
            owner=await self._owner(event),
        )

    async def _transition(
        self,
        at: datetime,
        event_id: UUID,
        to_status: StatusEnum,
        note: str | None = None,
    ) -> tuple[ReminderEventModel, bool]:
        """
        Move a pending reminder to a terminal status.

        Returns the reminder and `True` if this call made the change. A reminder already in the requested status is returned unchanged with `False`.
        """
        SpanAttributeEnum.REMINDER_ID.attribute(str(event_id))
        event = await self._store.reminder_get(event_id)
        if not event:
            raise ReminderNotFoundError(event_id)
        if event.status == to_status:
            return event, False
        if event.status != StatusEnum.PENDING:
            raise InvalidTransitionError(
                current=event.status.value,
                event_id=event_id,
                requested=to_status.value,
            )

        updated = await self._store.reminder_transition(
            at=at,
            event_id=event_id,
            from_status=StatusEnum.PENDING,
            note=note,
            to_status=to_status,
        )
        if updated:
            return updated, True

        # Status changed since the read, check who won
        current = await self._store.reminder_get(event_id)
        if not current:
            raise ReminderNotFoundError(event_id)
        if current.status == to_status:
            return current, False
        raise InvalidTransitionError(
            current=current.status.value,
            event_id=event_id,
            requested=to_status.value,
        )

    async def _medicine(self, event: ReminderEventModel) -> MedicineModel:
        medicine = await self._store.medicine_get(event.medicine_id)
        if not medicine:
            raise DependencyUnavailableError(
                f"Medicine {event.medicine_id} of reminder {event.event_id} not found"
            )
        return medicine

    async def _owner(self, event: ReminderEventModel) -> OwnerModel:
        owner = await self._store.owner_get(event.owner_id)
        if not owner:
            raise DependencyUnavailableError(
                f"Owner {event.owner_id} of reminder {event.event_id} not found"
            )
        return owner
