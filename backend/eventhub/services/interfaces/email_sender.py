"""
E-mail delivery interface. Template rendering is not part of the core: a
sender receives a finished subject and plain-text body.
"""

from abc import ABC, abstractmethod


class EmailDeliveryError(Exception):
    pass


class EmailSender(ABC):
    @abstractmethod
    async def send(self, to_address: str, subject: str, body: str) -> None:
        """Deliver one e-mail. Raises EmailDeliveryError on failure."""
