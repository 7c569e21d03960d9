"""Notification delivery adapters."""

import logging
from abc import ABC, abstractmethod

from django.conf import settings

logger = logging.getLogger(__name__)


class AbstractAdapter(ABC):
    """Delivers one message to one receiver."""

    @abstractmethod
    def notify(self, receiver, sender, message, context: dict) -> bool:
        pass


class DatabaseAdapter(AbstractAdapter):
    """Stores the message in the receiver's notification inbox."""

    def notify(self, receiver, sender, message, context: dict) -> bool:
        from .services import post_notification

        post_notification(receiver, sender, message, context)
        return True


class MailAdapter(AbstractAdapter):
    """Sends the message by email through a background task."""

    def notify(self, receiver, sender, message, context: dict) -> bool:
        from .tasks import send_notification_email

        if not receiver.email:
            logger.debug(f"User {receiver.pk} has no email address, skip mail notification")
            return False

        send_notification_email.enqueue(
            subject=message.subject,
            message=message.body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[receiver.email],
        )
        return True


# Names accepted in CIRRUS_NOTIFICATION_ADAPTERS
ADAPTERS = {
    "db": DatabaseAdapter,
    "mail": MailAdapter,
}
