from abc import ABC, abstractmethod

from adherence.helpers.monitoring import start_as_current_span
from adherence.models.readiness import ReadinessEnum


class INotification(ABC):
    @abstractmethod
    @start_as_current_span("notification_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("notification_send")
    async def send(self, address: str, subject: str, body: str) -> bool:
        """
        Deliver a message to an address.

        Returns `True` if the message has been accepted by the transport. Failures are reported as `False` and never raised.
        """
