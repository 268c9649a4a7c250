from email.message import EmailMessage
from smtplib import SMTPServerDisconnected

import pytest
from conftest import at
from pydantic import TypeAdapter
from pytest_assume.plugin import assume
from tenacity import wait_none

from adherence.helpers.config_models.notification import ConsoleModel, SmtpModel
from adherence.helpers.config_models.scheduler import SchedulerModel
from adherence.helpers.notifications import NotificationDispatcher
from adherence.models.notification import (
    AdherenceNotificationModel,
    AudienceEnum,
    MissedNotificationModel,
    NotificationModel,
    ReminderNotificationModel,
)
from adherence.models.owner import CaregiverModel, OwnerModel
from adherence.models.readiness import ReadinessEnum
from adherence.persistence.console import ConsoleNotification
from adherence.persistence.smtp import SmtpNotification


class SmtpServerMock:
    """
    Fake SMTP server, recording the messages and simulating failures.
    """

    connections: int
    disconnects: int
    logins: list[tuple[str, str]]
    messages: list[EmailMessage]
    refused: dict[str, tuple[int, bytes]]

    def __init__(self):
        self.connections = 0
        self.disconnects = 0
        self.logins = []
        self.messages = []
        self.refused = {}

    def client(
        self,
        host: str,  # noqa: ARG002
        port: int,  # noqa: ARG002
        timeout: float,  # noqa: ARG002
    ) -> "SmtpClientMock":
        self.connections += 1
        return SmtpClientMock(self)


class SmtpClientMock:
    _server: SmtpServerMock

    def __init__(self, server: SmtpServerMock):
        self._server = server

    def __enter__(self) -> "SmtpClientMock":
        return self

    def __exit__(self, *args) -> None:
        pass

    def close(self) -> None:
        pass

    def login(self, user: str, password: str) -> None:
        self._server.logins.append((user, password))

    def noop(self) -> tuple[int, bytes]:
        return 250, b"OK"

    def send_message(self, message: EmailMessage) -> dict:
        if self._server.disconnects:
            self._server.disconnects -= 1
            raise SMTPServerDisconnected("Connection unexpectedly closed")
        self._server.messages.append(message)
        return dict(self._server.refused)

    def starttls(self) -> None:
        pass


@pytest.fixture
def smtp_server(monkeypatch: pytest.MonkeyPatch) -> SmtpServerMock:
    server = SmtpServerMock()
    monkeypatch.setattr("adherence.persistence.smtp.SMTP", server.client)
    # Do not wait between retries
    monkeypatch.setattr(SmtpNotification._send.retry, "wait", wait_none())
    return server


@pytest.fixture
def smtp() -> SmtpNotification:
    return SmtpNotification(
        SmtpModel(
            from_address="reminders@example.com",
            host="smtp.example.com",
            password="secret",
            username="reminders@example.com",
        )
    )


@pytest.mark.asyncio(loop_scope="session")
async def test_console() -> None:
    gateway = ConsoleNotification(ConsoleModel(outbox_size=2))
    assume(await gateway.readiness() == ReadinessEnum.OK)

    for i in range(3):
        assume(await gateway.send(f"user{i}@example.com", f"Subject {i}", "Body"))
    # Oldest message is dropped
    assume(
        [address for address, _, _ in gateway.outbox]
        == ["user1@example.com", "user2@example.com"]
    )


@pytest.mark.asyncio(loop_scope="session")
async def test_smtp_send(
    smtp: SmtpNotification,
    smtp_server: SmtpServerMock,
) -> None:
    assume(await smtp.readiness() == ReadinessEnum.OK)

    assume(await smtp.send("owner@example.com", "Time to take Metformin", "Hello"))
    assume(len(smtp_server.messages) == 1)
    message = smtp_server.messages[0]
    assume(message["From"] == "reminders@example.com")
    assume(message["To"] == "owner@example.com")
    assume(message["Subject"] == "Time to take Metformin")
    assume(message.get_content().strip() == "Hello")
    assume(("reminders@example.com", "secret") in smtp_server.logins)


@pytest.mark.asyncio(loop_scope="session")
async def test_smtp_refused(
    smtp: SmtpNotification,
    smtp_server: SmtpServerMock,
) -> None:
    """
    Test a refused recipient is reported as a failure, without raising.
    """
    smtp_server.refused = {"owner@example.com": (550, b"Mailbox unavailable")}
    assume(not await smtp.send("owner@example.com", "Subject", "Body"))
    # Not retried
    assume(smtp_server.connections == 1)


@pytest.mark.asyncio(loop_scope="session")
async def test_smtp_retry(
    smtp: SmtpNotification,
    smtp_server: SmtpServerMock,
) -> None:
    """
    Test disconnections are retried, up to 3 attempts.
    """
    smtp_server.disconnects = 2
    assume(await smtp.send("owner@example.com", "Subject", "Body"))
    assume(smtp_server.connections == 3)
    assume(len(smtp_server.messages) == 1)

    smtp_server.connections = 0
    smtp_server.disconnects = 10
    assume(not await smtp.send("owner@example.com", "Subject", "Body"))
    assume(smtp_server.connections == 3)


@pytest.mark.asyncio(loop_scope="session")
async def test_dispatch_audiences(
    gateway: ConsoleNotification,
    owner: OwnerModel,
) -> None:
    """
    Test the owner receives reminders and missed notices, but not adherence notices.
    """
    dispatcher = NotificationDispatcher(gateway, SchedulerModel(timezone="UTC").tz)

    report = await dispatcher.dispatch(
        notification=ReminderNotificationModel(
            dosage="500 mg",
            medicine_name="Metformin",
            scheduled_at=at(8, 0),
        ),
        owner=owner,
    )
    assume(report.sent == 1)
    assume(report.failed == 0)
    address, subject, body = gateway.outbox[-1]
    assume(address == owner.email)
    assume(subject == "Time to take Metformin")
    assume("500 mg" in body)
    assume("08:00" in body)
    assume("Olivia" in body)

    gateway.outbox.clear()
    report = await dispatcher.dispatch(
        notification=AdherenceNotificationModel(
            medicine_name="Metformin",
            scheduled_at=at(8, 0),
            taken_at=at(8, 4),
        ),
        owner=owner,
    )
    assume(report.sent == 1)
    address, subject, body = gateway.outbox[-1]
    assume(address == "bob@example.com")
    assume(subject == "Olivia took Metformin")
    assume("Hello Bob" in body)


@pytest.mark.asyncio(loop_scope="session")
async def test_dispatch_timezone(
    gateway: ConsoleNotification,
    owner: OwnerModel,
) -> None:
    """
    Test times are rendered in the timezone given to the dispatcher, not the global one.

    Paris is UTC+2 in October, before the switch to winter time.
    """
    dispatcher = NotificationDispatcher(
        gateway, SchedulerModel(timezone="Europe/Paris").tz
    )
    await dispatcher.dispatch(
        notification=MissedNotificationModel(
            medicine_name="Metformin",
            missed_at=at(6, 36),
            scheduled_at=at(6, 0),
        ),
        owner=owner,
    )
    bodies = {address: body for address, _, body in gateway.outbox}
    assume("08:00" in bodies[owner.email])
    assume("06:00" not in bodies[owner.email])
    assume("08:00" in bodies["alice@example.com"])
    assume("08:36" in bodies["alice@example.com"])


@pytest.mark.asyncio(loop_scope="session")
async def test_dispatch_owner_opt_out(gateway: ConsoleNotification) -> None:
    """
    Test an owner without emails still has caregivers notified, and an address is notified once.
    """
    owner = OwnerModel(
        caregivers=[
            CaregiverModel(address="carol@example.com", notify_on_missed=True),
            CaregiverModel(address="owner@example.com", notify_on_missed=True),
        ],
        email="owner@example.com",
        name="Olivia",
        notify_email=False,
    )
    dispatcher = NotificationDispatcher(gateway, SchedulerModel(timezone="UTC").tz)
    notification = MissedNotificationModel(
        medicine_name="Metformin",
        missed_at=at(8, 31),
        scheduled_at=at(8, 0),
    )

    await dispatcher.dispatch(notification=notification, owner=owner)
    assume(
        [address for address, _, _ in gateway.outbox]
        == ["carol@example.com", "owner@example.com"]
    )

    gateway.outbox.clear()
    owner.notify_email = True
    await dispatcher.dispatch(notification=notification, owner=owner)
    # Owner first, as owner, and not again as caregiver
    assume(
        [address for address, _, _ in gateway.outbox]
        == ["owner@example.com", "carol@example.com"]
    )
    assume(gateway.outbox[0][1] == "Missed dose of Metformin")


def test_notification_union() -> None:
    notification = TypeAdapter(NotificationModel).validate_python(
        {
            "kind": "low_inventory",
            "days_remaining": 2,
            "low_stock_threshold": 5,
            "medicine_name": "Metformin",
            "remaining_doses": 4,
        }
    )
    assume(notification.notify_owner)
    assume(
        notification.template_name(AudienceEnum.OWNER)
        == "low_inventory_owner.txt.jinja"
    )
