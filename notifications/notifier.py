"""
Notification dispatch.

A Notifier holds named delivery adapters and fans a message out to every
adapter for every receiver. The process-wide notifier is built from
CIRRUS_NOTIFICATION_ADAPTERS on first use.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

from .adapters import ADAPTERS, AbstractAdapter
from .exceptions import AdapterNotFound, AdapterNotUnique

logger = logging.getLogger(__name__)


@dataclass
class Message:
    """Plain notification content."""

    subject: str
    body: str = ""


class Notifier:
    def __init__(self):
        self._adapters: dict[str, AbstractAdapter] = {}

    def inject_adapter(self, adapter: AbstractAdapter, name: Optional[str] = None) -> "Notifier":
        """
        Register a delivery adapter.

        Args:
            adapter: Adapter instance
            name: Registry name, defaults to the adapter's class name

        Raises:
            AdapterNotUnique: The name is already taken
        """
        if name is None:
            name = adapter.__class__.__name__

        logger.debug(f"Inject notification adapter '{name}' of type {adapter.__class__.__name__}")

        if self.has_adapter(name):
            raise AdapterNotUnique(f"adapter {name} is already registered")

        self._adapters[name] = adapter
        return self

    def has_adapter(self, name: str) -> bool:
        return name in self._adapters

    def get_adapter(self, name: str) -> AbstractAdapter:
        if not self.has_adapter(name):
            raise AdapterNotFound(f"adapter {name} is not registered")
        return self._adapters[name]

    def get_adapters(self, names: Optional[Iterable[str]] = None) -> dict[str, AbstractAdapter]:
        """All adapters, or the named subset (AdapterNotFound for unknown names)."""
        if not names:
            return dict(self._adapters)
        return {name: self.get_adapter(name) for name in names}

    def notify(self, receivers: Iterable, sender, message: Message, context: Optional[dict] = None) -> bool:
        """
        Deliver ``message`` to every receiver through every adapter.

        Returns:
            False when no adapter is enabled, True otherwise
        """
        if not self._adapters:
            logger.warning("There are no notification adapters enabled, notification can not be sent")
            return False

        for user in receivers:
            for name, adapter in self._adapters.items():
                logger.debug(f"Send notification to user {user.pk} via adapter '{name}'")
                adapter.notify(user, sender, message, context or {})

        return True


_notifier: Optional[Notifier] = None


def build_notifier(adapter_names: Iterable[str]) -> Notifier:
    """Build a notifier with the configured adapters."""
    notifier = Notifier()
    for name in adapter_names:
        name = name.strip()
        if not name:
            continue
        if name not in ADAPTERS:
            raise AdapterNotFound(f"unknown notification adapter '{name}'")
        notifier.inject_adapter(ADAPTERS[name](), name)
    return notifier


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = build_notifier(settings.CIRRUS_NOTIFICATION_ADAPTERS)
    return _notifier


@receiver(setting_changed)
def reset_notifier(setting, **kwargs):
    """Rebuild the notifier after override_settings changed the adapters."""
    global _notifier
    if setting == "CIRRUS_NOTIFICATION_ADAPTERS":
        _notifier = None
