from enum import Enum
from functools import cached_property

from pydantic import BaseModel, EmailStr, Field, SecretStr, ValidationInfo, field_validator

from adherence.persistence.inotification import INotification


class ModeEnum(str, Enum):
    CONSOLE = "console"
    """Log messages to the console, no email is sent."""
    SMTP = "smtp"
    """Send emails with an SMTP server."""


class ConsoleModel(BaseModel, frozen=True):
    outbox_size: int = Field(default=1000, ge=0)
    """Number of sent messages kept in memory for inspection."""

    @cached_property
    def instance(self) -> INotification:
        from adherence.persistence.console import (
            ConsoleNotification,
        )

        return ConsoleNotification(self)


class SmtpModel(BaseModel, frozen=True):
    from_address: EmailStr
    host: str
    password: SecretStr | None = None
    port: int = Field(default=587, ge=1, le=65535)
    starttls: bool = True
    timeout_sec: float = Field(default=30, gt=0)
    username: str | None = None

    @cached_property
    def instance(self) -> INotification:
        from adherence.persistence.smtp import (
            SmtpNotification,
        )

        return SmtpNotification(self)


class NotificationModel(BaseModel):
    # Mode first, validators of the other fields depend on it
    mode: ModeEnum = ModeEnum.CONSOLE
    console: ConsoleModel | None = ConsoleModel()  # Object is fully defined by default
    smtp: SmtpModel | None = Field(default=None, validate_default=True)

    @field_validator("console")
    @classmethod
    def _validate_console(
        cls,
        console: ConsoleModel | None,
        info: ValidationInfo,
    ) -> ConsoleModel | None:
        if not console and info.data.get("mode", None) == ModeEnum.CONSOLE:
            raise ValueError("Console config required")
        return console

    @field_validator("smtp")
    @classmethod
    def _validate_smtp(
        cls,
        smtp: SmtpModel | None,
        info: ValidationInfo,
    ) -> SmtpModel | None:
        if not smtp and info.data.get("mode", None) == ModeEnum.SMTP:
            raise ValueError("SMTP config required")
        return smtp

    @cached_property
    def instance(self) -> INotification:
        if self.mode == ModeEnum.CONSOLE:
            assert self.console
            return self.console.instance

        assert self.smtp
        return self.smtp.instance
