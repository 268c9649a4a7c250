from uuid import UUID


class AdherenceError(Exception):
    """
    Base class for all the errors raised by the reminder engine.
    """


class MalformedScheduleEntryError(AdherenceError, ValueError):
    """
    A configured time is not a valid `HH:MM` value.

    Inherits from `ValueError` so Pydantic reports it as a validation error.
    """

    value: str

    def __init__(self, value: str):
        self.value = value
        super().__init__(f'Time "{value}" is not a valid 24-hour HH:MM value')


class ReminderNotFoundError(AdherenceError):
    event_id: UUID

    def __init__(self, event_id: UUID):
        self.event_id = event_id
        super().__init__(f"Reminder {event_id} not found")


class InvalidTransitionError(AdherenceError):
    """
    A status change has been requested from a state which does not allow it.

    The reminder is left unchanged.
    """

    current: str
    event_id: UUID
    requested: str

    def __init__(self, event_id: UUID, current: str, requested: str):
        self.current = current
        self.event_id = event_id
        self.requested = requested
        super().__init__(
            f'Reminder {event_id} cannot go from "{current}" to "{requested}"'
        )


class DependencyUnavailableError(AdherenceError):
    """
    A collaborator (store, notification gateway) cannot be used.
    """


class NotificationFailedError(AdherenceError):
    """
    A message has been refused by the notification transport.
    """
