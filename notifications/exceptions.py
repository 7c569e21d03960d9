"""Exceptions raised by the notifications app."""

from core.exceptions import CirrusException


class NotificationNotFound(CirrusException):
    """Notification does not exist or belongs to another user."""

    code = "NOTIFICATION_NOT_FOUND"
    status_code = 404


class AdapterNotUnique(CirrusException):
    """An adapter with the same name is already registered."""

    code = "ADAPTER_NOT_UNIQUE"


class AdapterNotFound(CirrusException):
    """No adapter with the requested name is registered."""

    code = "ADAPTER_NOT_FOUND"
