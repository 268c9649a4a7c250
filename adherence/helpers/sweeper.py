from datetime import datetime

from adherence.helpers.config_models.scheduler import SchedulerModel
from adherence.helpers.logging import logger
from adherence.helpers.monitoring import start_as_current_span
from adherence.helpers.reminder_events import ReminderStateMachine
from adherence.models.tick import SubtaskReportModel
from adherence.persistence.istore import IStore


class MissedDoseSweeper:
    """
    Declare missed the pending reminders older than the grace period.
    """

    _config: SchedulerModel
    _state_machine: ReminderStateMachine
    _store: IStore

    def __init__(
        self,
        config: SchedulerModel,
        state_machine: ReminderStateMachine,
        store: IStore,
    ):
        self._config = config
        self._state_machine = state_machine
        self._store = store

    @start_as_current_span("sweeper_sweep")
    async def sweep(self, now: datetime) -> SubtaskReportModel:
        """
        Transition every overdue pending reminder to missed, then notify.

        A reminder taken or skipped concurrently is left alone. A reminder with a missing medicine or owner stays missed and is counted as an error.
        """
        report = SubtaskReportModel()
        cutoff = now - self._config.grace_period
        events = await self._store.reminder_search_pending_older_than(cutoff)

        for event in events:
            try:
                missed = await self._state_machine.mark_missed(event=event, now=now)
            except Exception:
                logger.exception("Error marking reminder %s as missed", event.event_id)
                report.errors += 1
                continue
            # Lost the race against a status update
            if not missed:
                continue
            report.processed += 1

            try:
                dispatch = await self._state_machine.notify_missed(missed)
            except Exception:
                logger.exception(
                    "Error notifying missed reminder %s", missed.event_id
                )
                report.errors += 1
                continue
            report.sent_notifications += dispatch.sent
            report.failed_notifications += dispatch.failed

        logger.debug(
            "Sweep before %s: %i missed, %i error(s)",
            cutoff,
            report.processed,
            report.errors,
        )
        return report
