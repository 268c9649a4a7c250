from datetime import datetime, tzinfo

from jinja2 import Environment, FileSystemLoader, pass_context
from jinja2.runtime import Context

from adherence.helpers.fanout import caregiver_addresses
from adherence.helpers.logging import logger
from adherence.helpers.monitoring import (
    SpanAttributeEnum,
    counter_add,
    notification_failed,
    notification_sent,
    start_as_current_span,
)
from adherence.helpers.resources import resources_dir
from adherence.models.notification import (
    AudienceEnum,
    DispatchReportModel,
    NotificationModel,
)
from adherence.models.owner import OwnerModel
from adherence.persistence.inotification import INotification

# Jinja configuration
_jinja = Environment(
    auto_reload=False,  # Disable auto-reload for performance
    autoescape=False,  # Plain text emails
    enable_async=True,
    loader=FileSystemLoader(resources_dir("templates")),
    lstrip_blocks=True,
    trim_blocks=True,
)


@pass_context
def _local_time(context: Context, value: datetime | None) -> str:
    """
    Format an instant as `HH:MM`, in the `tz` of the rendering, or the system local timezone.
    """
    if not isinstance(value, datetime):
        return ""
    tz = context.get("tz")
    return (value.astimezone(tz) if tz else value.astimezone()).strftime("%H:%M")


# Jinja custom functions
_jinja.filters["local_time"] = _local_time


class NotificationDispatcher:
    """
    Render the notifications and send them to the owner and the selected caregivers.
    """

    _gateway: INotification
    _tz: tzinfo | None

    def __init__(self, gateway: INotification, tz: tzinfo | None):
        """
        Times are rendered in `tz`, the system local timezone if `None`.
        """
        self._gateway = gateway
        self._tz = tz

    @start_as_current_span("notification_dispatch")
    async def dispatch(
        self,
        notification: NotificationModel,
        owner: OwnerModel,
    ) -> DispatchReportModel:
        """
        Send a notification to each of its recipients.

        Each recipient is independent, a failure is logged and counted without stopping the others.
        """
        SpanAttributeEnum.NOTIFICATION_KIND.attribute(notification.kind.value)
        report = DispatchReportModel()

        for address, audience, name in self._recipients(notification, owner):
            try:
                subject, body = await self._render(
                    audience=audience,
                    notification=notification,
                    owner=owner,
                    recipient_name=name,
                )
                sent = await self._gateway.send(
                    address=address,
                    body=body,
                    subject=subject,
                )
            except Exception:
                logger.exception(
                    "Error sending %s notification to %s",
                    notification.kind.value,
                    address,
                )
                sent = False
            if sent:
                report.sent += 1
            else:
                report.failed += 1

        counter_add(notification_sent, report.sent)
        counter_add(notification_failed, report.failed)
        logger.debug(
            "Notification %s dispatched: %i sent, %i failed",
            notification.kind.value,
            report.sent,
            report.failed,
        )
        return report

    @staticmethod
    def _recipients(
        notification: NotificationModel,
        owner: OwnerModel,
    ) -> list[tuple[str, AudienceEnum, str | None]]:
        """
        List the recipients as `(address, audience, name)`, each address once.

        The owner comes first, it is not notified twice if also listed as a caregiver.
        """
        recipients: list[tuple[str, AudienceEnum, str | None]] = []
        if notification.notify_owner and owner.notify_email:
            recipients.append((owner.email, AudienceEnum.OWNER, owner.name))

        names = {caregiver.address: caregiver.name for caregiver in owner.caregivers}
        for address in caregiver_addresses(owner, notification.kind):
            if any(address == recipient[0] for recipient in recipients):
                continue
            recipients.append((address, AudienceEnum.CAREGIVER, names.get(address)))
        return recipients

    async def _render(
        self,
        audience: AudienceEnum,
        notification: NotificationModel,
        owner: OwnerModel,
        recipient_name: str | None,
    ) -> tuple[str, str]:
        """
        Render the subject and the body of a notification.

        Subject is set by the template, as a top-level `subject` variable.
        """
        template = _jinja.get_template(notification.template_name(audience))
        module = await template.make_module_async(
            {
                "notification": notification,
                "owner": owner,
                "recipient_name": recipient_name,
                "tz": self._tz,
            }
        )
        subject = str(getattr(module, "subject", "")).strip()
        body = str(module).strip()
        return subject, body
