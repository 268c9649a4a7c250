from datetime import datetime

from pydantic import BaseModel


class SubtaskReportModel(BaseModel):
    errors: int = 0
    failed_notifications: int = 0
    processed: int = 0
    sent_notifications: int = 0


class TickReportModel(BaseModel):
    created: int = 0
    errors: int = 0
    failed_notifications: int = 0
    inventory: SubtaskReportModel | None = None
    """Low inventory scan, if it ran during this tick."""
    malformed: int = 0
    matched: int = 0
    now: datetime
    sent_notifications: int = 0
    skipped: bool = False
    """The tick did not run because the previous one was still in progress."""
    suppressed: int = 0
    sweep: SubtaskReportModel | None = None
    """Missed-dose sweep, if it ran during this tick."""

    @property
    def idle(self) -> bool:
        return not (self.matched or self.malformed or self.sweep or self.inventory)
