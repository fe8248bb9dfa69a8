"""
E-mail senders.

LoggingEmailSender writes every message to the structured log; it is the
default until an SMTP relay is configured. NullEmailSender drops everything.
"""

from eventhub.core.logging import get_logger
from eventhub.services.interfaces.email_sender import EmailSender

logger = get_logger(__name__)


class LoggingEmailSender(EmailSender):
    async def send(self, to_address: str, subject: str, body: str) -> None:
        logger.info("email_sent", to=to_address, subject=subject, body_length=len(body))


class NullEmailSender(EmailSender):
    async def send(self, to_address: str, subject: str, body: str) -> None:
        return None
