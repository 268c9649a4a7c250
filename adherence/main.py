import asyncio
from signal import SIGINT, SIGTERM

from adherence.helpers.config import CONFIG
from adherence.helpers.logging import logger
from adherence.helpers.monitoring import start_as_current_span
from adherence.helpers.scheduler import ReminderScheduler
from adherence.models.readiness import ReadinessEnum, ReadinessModel

# Persistence
_notification = CONFIG.notification.instance
_store = CONFIG.database.instance

logger.info("medication-adherence v%s", CONFIG.version)


@start_as_current_span("main_readiness")
async def readiness() -> ReadinessModel:
    """
    Check if the dependencies are ready.
    """
    (
        notification_check,
        store_check,
    ) = await asyncio.gather(
        _notification.readiness(),
        _store.readiness(),
    )
    return ReadinessModel.from_checks(
        notification=notification_check,
        store=store_check,
    )


async def main() -> None:
    """
    Run the scheduler until SIGINT or SIGTERM.
    """
    status = await readiness()
    if status.status != ReadinessEnum.OK:
        # Keep running, reminders are created even if some notifications fail
        logger.warning("Readiness failed: %s", status.model_dump(mode="json"))
    else:
        logger.info("Readiness OK")

    scheduler = ReminderScheduler(
        config=CONFIG.scheduler,
        notification=_notification,
        store=_store,
    )
    loop = asyncio.get_running_loop()
    for sig in (SIGINT, SIGTERM):
        loop.add_signal_handler(sig, scheduler.stop)
    await scheduler.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
