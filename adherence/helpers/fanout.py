from adherence.models.notification import KindEnum
from adherence.models.owner import CaregiverModel, OwnerModel

_FLAGS: dict[KindEnum, str] = {
    KindEnum.ADHERENCE: "notify_on_adherence",
    KindEnum.LOW_INVENTORY: "notify_on_low_inventory",
    KindEnum.MISSED: "notify_on_missed",
    KindEnum.REMINDER: "notify_on_reminder",
}


def wants(caregiver: CaregiverModel, kind: KindEnum) -> bool:
    """
    Whether the caregiver opted in for the notification class.
    """
    return getattr(caregiver, _FLAGS[kind])


def caregiver_addresses(owner: OwnerModel, kind: KindEnum) -> list[str]:
    """
    Addresses of the caregivers to notify for a notification class.

    Order of the caregivers is kept, duplicated addresses are only returned once.
    """
    addresses: list[str] = []
    for caregiver in owner.caregivers:
        if wants(caregiver, kind) and caregiver.address not in addresses:
            addresses.append(caregiver.address)
    return addresses
