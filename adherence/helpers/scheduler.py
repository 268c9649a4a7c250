import asyncio
from datetime import UTC, datetime
from time import time

from aiojobs import Job

from adherence.helpers.cache import get_scheduler
from adherence.helpers.config import CONFIG
from adherence.helpers.config_models.scheduler import SchedulerModel
from adherence.helpers.exceptions import DependencyUnavailableError
from adherence.helpers.inventory import InventoryLedger
from adherence.helpers.logging import logger
from adherence.helpers.matcher import ScheduleMatchModel, local_now, match_due
from adherence.helpers.monitoring import (
    SpanAttributeEnum,
    counter_add,
    reminder_created,
    reminder_suppressed,
    start_as_current_span,
    suppress,
    tick_errors,
)
from adherence.helpers.notifications import NotificationDispatcher
from adherence.helpers.reminder_events import ReminderStateMachine
from adherence.helpers.sweeper import MissedDoseSweeper
from adherence.models.notification import ReminderNotificationModel
from adherence.models.reminder import ReminderEventModel
from adherence.models.tick import SubtaskReportModel, TickReportModel
from adherence.persistence.inotification import INotification
from adherence.persistence.istore import IStore


class ReminderScheduler:
    """
    Minute ticker creating the reminders, sweeping the missed ones and scanning the inventory.

    Use `tick` for a single run, or `run` to tick on each interval until `stop` is called.
    """

    _config: SchedulerModel
    _dispatcher: NotificationDispatcher
    _stop_event: asyncio.Event
    _store: IStore
    _sweeper: MissedDoseSweeper
    _tick_lock: asyncio.Lock
    last_report: TickReportModel | None = None
    ledger: InventoryLedger
    state_machine: ReminderStateMachine

    def __init__(
        self,
        config: SchedulerModel,
        notification: INotification,
        store: IStore,
    ):
        self._config = config
        self._store = store
        self._dispatcher = NotificationDispatcher(notification, config.tz)
        self.ledger = InventoryLedger(
            dispatcher=self._dispatcher,
            store=store,
        )
        self.state_machine = ReminderStateMachine(
            dispatcher=self._dispatcher,
            ledger=self.ledger,
            store=store,
        )
        self._sweeper = MissedDoseSweeper(
            config=config,
            state_machine=self.state_machine,
            store=store,
        )
        self._stop_event = asyncio.Event()
        self._tick_lock = asyncio.Lock()

    async def run(self) -> None:
        """
        Tick on each interval boundary, until `stop` is called.

        A tick is skipped if the previous one is still running. On stop, the in-flight tick is given `stop_timeout_sec` to finish.
        """
        interval = self._config.tick_interval_sec
        logger.info("Starting scheduler, ticking every %i sec", interval)
        self._stop_event.clear()

        async with get_scheduler(
            close_timeout=self._config.stop_timeout_sec
        ) as scheduler:
            job: Job | None = None
            while not self._stop_event.is_set():
                # Wait for the next interval boundary, or the stop
                delay = interval - (time() % interval)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                    break
                except TimeoutError:
                    pass

                if job and not job.closed:
                    logger.warning("Previous tick still in progress, skipping this one")
                    continue
                job = await scheduler.spawn(self._run_tick())

            if job and not job.closed:
                logger.info("Waiting for the in-flight tick to finish")
                with suppress(TimeoutError):
                    await job.wait(timeout=self._config.stop_timeout_sec)

        logger.info("Scheduler stopped")

    def stop(self) -> None:
        logger.info("Stopping scheduler")
        self._stop_event.set()

    async def _run_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            # Driver must survive any tick failure
            logger.exception("Unexpected error during tick")
            counter_add(tick_errors, 1)

    @start_as_current_span("scheduler_tick")
    async def tick(self, now: datetime | None = None) -> TickReportModel:
        """
        Run a single tick.

        Returns a skipped report if another tick is in progress.
        """
        now = now or datetime.now(UTC)
        if self._tick_lock.locked():
            logger.warning("Previous tick still in progress, skipping tick at %s", now)
            return TickReportModel(
                now=now,
                skipped=True,
            )

        async with self._tick_lock:
            report = await self._tick(now)

        counter_add(tick_errors, report.errors)
        self._log_report(report)
        self.last_report = report
        return report

    async def _tick(self, now: datetime) -> TickReportModel:
        report = TickReportModel(now=now)
        local = local_now(now, self._config.tz)

        try:
            medicines = await self._store.medicine_list_active()
        except Exception:
            logger.exception("Error listing active medicines")
            medicines = []
            report.errors += 1
        matches, report.malformed = match_due(local, medicines)
        report.matched = len(matches)

        semaphore = asyncio.Semaphore(self._config.concurrency)
        units = [self._match_unit(match, now, report, semaphore) for match in matches]
        if local.minute % self._config.missed_sweep_interval_min == 0:
            units.append(self._sweep_unit(now, report))
        if local.minute % self._config.low_inventory_scan_interval_min == 0:
            units.append(self._inventory_unit(now, report))
        await asyncio.gather(*units)

        # Aggregate the sub-tasks
        for subtask in (report.sweep, report.inventory):
            if not subtask:
                continue
            report.errors += subtask.errors
            report.failed_notifications += subtask.failed_notifications
            report.sent_notifications += subtask.sent_notifications
        return report

    async def _match_unit(
        self,
        match: ScheduleMatchModel,
        now: datetime,
        report: TickReportModel,
        semaphore: asyncio.Semaphore,
    ) -> None:
        """
        Create and notify the reminder of a match, isolated from the other matches.
        """
        async with semaphore:
            try:
                await self._process_match(match, now, report)
            except Exception:
                logger.exception(
                    "Error processing medicine %s at %s",
                    match.medicine.medicine_id,
                    match.time,
                )
                report.errors += 1

    async def _process_match(
        self,
        match: ScheduleMatchModel,
        now: datetime,
        report: TickReportModel,
    ) -> None:
        medicine = match.medicine
        SpanAttributeEnum.MEDICINE_ID.attribute(str(medicine.medicine_id))
        SpanAttributeEnum.OWNER_ID.attribute(str(medicine.owner_id))

        event, created = await self._store.reminder_create_if_absent(
            ReminderEventModel(
                fired_at=now,
                medicine_id=medicine.medicine_id,
                note=f"Auto-generated reminder for {medicine.name}",
                owner_id=medicine.owner_id,
                scheduled_at=match.scheduled_at,
                scheduled_day=match.scheduled_day,
                scheduled_time=match.time,
            )
        )
        SpanAttributeEnum.REMINDER_ID.attribute(str(event.event_id))
        if not created:
            logger.debug(
                "DuplicateSuppressed, reminder %s already exists", event.event_id
            )
            counter_add(reminder_suppressed, 1)
            report.suppressed += 1
            return

        logger.info("Reminder %s created for %s", event.event_id, medicine.name)
        counter_add(reminder_created, 1)
        report.created += 1

        owner = await self._store.owner_get(medicine.owner_id)
        if not owner:
            raise DependencyUnavailableError(f"Owner {medicine.owner_id} not found")
        dispatch = await self._dispatcher.dispatch(
            notification=ReminderNotificationModel(
                dosage=medicine.dosage,
                medicine_name=medicine.name,
                scheduled_at=event.scheduled_at,
            ),
            owner=owner,
        )
        report.failed_notifications += dispatch.failed
        report.sent_notifications += dispatch.sent

    async def _sweep_unit(self, now: datetime, report: TickReportModel) -> None:
        try:
            report.sweep = await self._sweeper.sweep(now)
        except Exception:
            logger.exception("Error sweeping missed reminders")
            report.sweep = SubtaskReportModel(errors=1)

    async def _inventory_unit(self, now: datetime, report: TickReportModel) -> None:
        try:
            report.inventory = await self.ledger.scan_low_inventory(now)
        except Exception:
            logger.exception("Error scanning low inventory")
            report.inventory = SubtaskReportModel(errors=1)

    @staticmethod
    def _log_report(report: TickReportModel) -> None:
        log = (
            logger.debug
            if report.idle and CONFIG.monitoring.logging.quiet_idle_ticks
            else logger.info
        )
        log(
            "Tick at %s: %i matched, %i created, %i suppressed, %i malformed, %i error(s), %i sent, %i failed",
            report.now,
            report.matched,
            report.created,
            report.suppressed,
            report.malformed,
            report.errors,
            report.sent_notifications,
            report.failed_notifications,
        )
