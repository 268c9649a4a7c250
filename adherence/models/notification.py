from datetime import datetime
from enum import Enum
from typing import Annotated, ClassVar, Literal

from pydantic import BaseModel, Field


class KindEnum(str, Enum):
    ADHERENCE = "adherence"
    LOW_INVENTORY = "low_inventory"
    MISSED = "missed"
    REMINDER = "reminder"


class AudienceEnum(str, Enum):
    CAREGIVER = "caregiver"
    OWNER = "owner"


class _BaseNotificationModel(BaseModel):
    notify_owner: ClassVar[bool] = True
    """If the owner receives the notification, caregivers are always selected by the fanout."""
    medicine_name: str

    def template_name(self, audience: AudienceEnum) -> str:
        kind: KindEnum = getattr(self, "kind")
        return f"{kind.value}_{audience.value}.txt.jinja"


class ReminderNotificationModel(_BaseNotificationModel):
    dosage: str | None = None
    kind: Literal[KindEnum.REMINDER] = KindEnum.REMINDER
    scheduled_at: datetime


class MissedNotificationModel(_BaseNotificationModel):
    kind: Literal[KindEnum.MISSED] = KindEnum.MISSED
    missed_at: datetime
    scheduled_at: datetime


class AdherenceNotificationModel(_BaseNotificationModel):
    notify_owner: ClassVar[bool] = False  # The owner is the one who took it
    kind: Literal[KindEnum.ADHERENCE] = KindEnum.ADHERENCE
    scheduled_at: datetime
    taken_at: datetime


class LowInventoryNotificationModel(_BaseNotificationModel):
    days_remaining: int
    kind: Literal[KindEnum.LOW_INVENTORY] = KindEnum.LOW_INVENTORY
    low_stock_threshold: float
    remaining_doses: float


NotificationModel = Annotated[
    ReminderNotificationModel
    | MissedNotificationModel
    | AdherenceNotificationModel
    | LowInventoryNotificationModel,
    Field(discriminator="kind"),
]


class DispatchReportModel(BaseModel):
    failed: int = 0
    sent: int = 0

    def __add__(self, other: "DispatchReportModel") -> "DispatchReportModel":
        return DispatchReportModel(
            failed=self.failed + other.failed,
            sent=self.sent + other.sent,
        )
