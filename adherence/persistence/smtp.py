import asyncio
from email.message import EmailMessage
from smtplib import SMTP, SMTPException, SMTPServerDisconnected

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from adherence.helpers.config_models.notification import SmtpModel
from adherence.helpers.exceptions import NotificationFailedError
from adherence.helpers.logging import logger
from adherence.models.readiness import ReadinessEnum
from adherence.persistence.inotification import INotification


class SmtpNotification(INotification):
    _config: SmtpModel

    def __init__(self, config: SmtpModel):
        logger.info(
            "Using SMTP server %s:%s from %s",
            config.host,
            config.port,
            config.from_address,
        )
        self._config = config

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the SMTP server.

        This only check if the server is reachable and accepts the credentials.
        """
        try:
            await asyncio.to_thread(self._noop_sync)
            return ReadinessEnum.OK
        except (SMTPException, OSError):
            logger.exception("Readiness test failed")
        except Exception:
            logger.exception("Unknown error while checking SMTP readiness")
        return ReadinessEnum.FAIL

    async def send(self, address: str, subject: str, body: str) -> bool:
        logger.info("Sending email to %s", address)
        success = False
        try:
            await self._send(
                address=address,
                body=body,
                subject=subject,
            )
            logger.debug("Email sent to %s", address)
            success = True
        except (NotificationFailedError, SMTPException, OSError):
            logger.exception("Error sending email to %s", address)
        return success

    @retry(
        reraise=True,
        retry=retry_if_exception_type(
            (ConnectionError, SMTPServerDisconnected, TimeoutError)
        ),
        stop=stop_after_attempt(3),
        wait=wait_random_exponential(multiplier=0.8, max=8),
    )
    async def _send(self, address: str, subject: str, body: str) -> None:
        """
        Send the email, in a worker thread as `smtplib` is blocking.

        Catch network errors for a maximum of 3 times.
        """
        message = EmailMessage()
        message["From"] = self._config.from_address
        message["Subject"] = subject
        message["To"] = address
        message.set_content(body)
        await asyncio.to_thread(self._send_sync, message)

    def _send_sync(self, message: EmailMessage) -> None:
        with self._use_client() as client:
            refused = client.send_message(message)
        # Some recipients can be refused while the others are accepted
        if refused:
            raise NotificationFailedError(
                f"Recipients refused by the server: {', '.join(refused)}"
            )

    def _noop_sync(self) -> None:
        with self._use_client() as client:
            code, _ = client.noop()
        if code != 250:
            raise SMTPException(f"Unexpected NOOP reply code {code}")

    def _use_client(self) -> SMTP:
        """
        Connect to the server, upgrade to TLS and authenticate if configured.

        The client must be used as a context manager, it closes the connection on exit.
        """
        client = SMTP(
            host=self._config.host,
            port=self._config.port,
            timeout=self._config.timeout_sec,
        )
        try:
            if self._config.starttls:
                client.starttls()
            if self._config.username and self._config.password:
                client.login(
                    password=self._config.password.get_secret_value(),
                    user=self._config.username,
                )
        except BaseException:
            client.close()
            raise
        return client
