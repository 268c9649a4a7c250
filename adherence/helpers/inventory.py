from datetime import UTC, datetime
from uuid import UUID

from adherence.helpers.exceptions import DependencyUnavailableError
from adherence.helpers.logging import logger
from adherence.helpers.monitoring import (
    SpanAttributeEnum,
    start_as_current_span,
)
from adherence.helpers.notifications import NotificationDispatcher
from adherence.models.medicine import MedicineModel
from adherence.models.notification import LowInventoryNotificationModel
from adherence.models.tick import SubtaskReportModel
from adherence.persistence.istore import IStore


class InventoryLedger:
    """
    Remaining doses of the medicines.

    Stock is only decremented by a taken dose and never goes below zero.
    """

    _dispatcher: NotificationDispatcher
    _store: IStore

    def __init__(self, dispatcher: NotificationDispatcher, store: IStore):
        self._dispatcher = dispatcher
        self._store = store

    @start_as_current_span("inventory_consume")
    async def consume(
        self,
        medicine_id: UUID,
        amount: float,
        at: datetime | None = None,
    ) -> MedicineModel:
        SpanAttributeEnum.MEDICINE_ID.attribute(str(medicine_id))
        medicine = await self._store.medicine_consume(
            amount=amount,
            at=at or datetime.now(UTC),
            medicine_id=medicine_id,
        )
        if not medicine:
            raise DependencyUnavailableError(f"Medicine {medicine_id} not found")
        logger.info(
            "Consumed %s dose(s) of %s, %s remaining",
            amount,
            medicine.name,
            medicine.remaining_doses,
        )
        if self.is_low_stock(medicine):
            logger.info("Medicine %s is low on stock", medicine.medicine_id)
        return medicine

    @start_as_current_span("inventory_refill")
    async def refill(
        self,
        medicine_id: UUID,
        amount: float | None = None,
        at: datetime | None = None,
    ) -> MedicineModel:
        """
        Add doses to the stock.

        The medicine's `refill_amount` is used if `amount` is not set. Raises a `ValueError` if the amount is not positive.
        """
        SpanAttributeEnum.MEDICINE_ID.attribute(str(medicine_id))
        if amount is None:
            current = await self._store.medicine_get(medicine_id)
            if not current:
                raise DependencyUnavailableError(f"Medicine {medicine_id} not found")
            amount = current.refill_amount
        if amount <= 0:
            raise ValueError(f"Refill amount must be positive, got {amount}")

        medicine = await self._store.medicine_refill(
            amount=amount,
            at=at or datetime.now(UTC),
            medicine_id=medicine_id,
        )
        if not medicine:
            raise DependencyUnavailableError(f"Medicine {medicine_id} not found")
        logger.info(
            "Refilled %s dose(s) of %s, %s remaining",
            amount,
            medicine.name,
            medicine.remaining_doses,
        )
        return medicine

    @staticmethod
    def is_low_stock(medicine: MedicineModel) -> bool:
        return medicine.is_low_stock()

    @start_as_current_span("inventory_scan_low")
    async def scan_low_inventory(self, now: datetime) -> SubtaskReportModel:  # noqa: ARG002
        """
        Notify the owners, and their caregivers, of the medicines running low.

        Medicines without `refill_reminder` are ignored. Notices are sent again on each scan while the stock stays low.
        """
        report = SubtaskReportModel()
        for medicine in await self._store.medicine_list_active():
            if not medicine.refill_reminder or not self.is_low_stock(medicine):
                continue
            report.processed += 1
            try:
                owner = await self._store.owner_get(medicine.owner_id)
                if not owner:
                    raise DependencyUnavailableError(
                        f"Owner {medicine.owner_id} not found"
                    )
                dispatch = await self._dispatcher.dispatch(
                    notification=LowInventoryNotificationModel(
                        days_remaining=medicine.days_remaining(),
                        low_stock_threshold=medicine.low_stock_threshold,
                        medicine_name=medicine.name,
                        remaining_doses=medicine.remaining_doses,
                    ),
                    owner=owner,
                )
            except Exception:
                logger.exception(
                    "Error notifying low inventory for medicine %s",
                    medicine.medicine_id,
                )
                report.errors += 1
                continue
            report.sent_notifications += dispatch.sent
            report.failed_notifications += dispatch.failed

        logger.debug("Low inventory scan: %i medicine(s) low", report.processed)
        return report
