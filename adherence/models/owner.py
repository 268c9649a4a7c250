from uuid import UUID, uuid4

from pydantic import BaseModel, EmailStr, Field


class CaregiverModel(BaseModel):
    address: EmailStr
    name: str | None = None
    notify_on_adherence: bool = False
    notify_on_low_inventory: bool = False
    notify_on_missed: bool = True
    notify_on_reminder: bool = False


class OwnerModel(BaseModel):
    # Immutable fields
    owner_id: UUID = Field(default_factory=uuid4, frozen=True)
    # Editable fields
    caregivers: list[CaregiverModel] = []
    email: EmailStr
    name: str
    notify_email: bool = True
    notify_push: bool = True
