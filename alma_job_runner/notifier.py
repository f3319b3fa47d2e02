import asyncio
import functools
import smtplib
from email.message import EmailMessage

from loguru import logger

from alma_job_runner.errors import NotificationError
from alma_job_runner.models import EmailConfig


class EmailNotifier:
    """Mails run reports through an SMTP relay."""

    def __init__(self, config: EmailConfig, smtp_factory=smtplib.SMTP):
        self.config = config
        self.logger = logger
        self._smtp_factory = smtp_factory

    def build_message(self, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.config.mail_from
        message["To"] = ", ".join(self.config.mail_to)
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with self._smtp_factory(self.config.smtp_server, self.config.smtp_port) as smtp:
            smtp.send_message(
                message, from_addr=self.config.mail_from, to_addrs=self.config.mail_to
            )

    async def send(self, subject: str, body: str) -> None:
        message = self.build_message(subject, body)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, functools.partial(self._deliver, message))
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(
                f"could not send report to {', '.join(self.config.mail_to)} "
                f"via {self.config.smtp_server}:{self.config.smtp_port}: {e}"
            ) from e
        self.logger.debug(f"Report sent to {', '.join(self.config.mail_to)}")
