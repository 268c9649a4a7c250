from collections import deque

from adherence.helpers.config_models.notification import ConsoleModel
from adherence.helpers.logging import logger
from adherence.models.readiness import ReadinessEnum
from adherence.persistence.inotification import INotification


class ConsoleNotification(INotification):
    """
    Notification gateway printing messages to the logs.

    The last messages are kept in `outbox`, oldest first, as `(address, subject, body)` tuples.
    """

    _config: ConsoleModel
    outbox: deque[tuple[str, str, str]]

    def __init__(self, config: ConsoleModel):
        logger.warning("Using console as notification, no real emails will be sent")
        self._config = config
        self.outbox = deque(maxlen=config.outbox_size)

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the console notification.
        """
        return ReadinessEnum.OK  # Always ready, it's the console :)

    async def send(self, address: str, subject: str, body: str) -> bool:
        logger.info("Email to %s: %s", address, subject)
        logger.debug("Email content: %s", body)
        self.outbox.append((address, subject, body))
        return True
