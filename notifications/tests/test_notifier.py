"""Tests for the notifier and its delivery adapters."""

from django.core import mail
from django.test import TestCase, override_settings

from core.tests.factories import UserFactory
from notifications.adapters import DatabaseAdapter, MailAdapter
from notifications.exceptions import AdapterNotFound, AdapterNotUnique
from notifications.models import Notification
from notifications.notifier import Message, Notifier, build_notifier, get_notifier


class NotifierRegistryTest(TestCase):
    """Tests for adapter registration."""

    def test_inject_adapter_uses_class_name(self):
        notifier = Notifier().inject_adapter(DatabaseAdapter())
        self.assertTrue(notifier.has_adapter("DatabaseAdapter"))

    def test_duplicate_name_raises(self):
        notifier = Notifier().inject_adapter(DatabaseAdapter(), "db")
        with self.assertRaises(AdapterNotUnique):
            notifier.inject_adapter(MailAdapter(), "db")

    def test_get_unknown_adapter_raises(self):
        with self.assertRaises(AdapterNotFound):
            Notifier().get_adapter("db")

    def test_get_adapters(self):
        notifier = build_notifier(["db", "mail"])

        self.assertEqual(set(notifier.get_adapters()), {"db", "mail"})
        self.assertEqual(list(notifier.get_adapters(["mail"])), ["mail"])

    def test_build_notifier_skips_blank_names(self):
        notifier = build_notifier(["db", " ", ""])
        self.assertEqual(list(notifier.get_adapters()), ["db"])

    def test_build_notifier_unknown_name_raises(self):
        with self.assertRaises(AdapterNotFound):
            build_notifier(["pigeon"])

    @override_settings(CIRRUS_NOTIFICATION_ADAPTERS=["db", "mail"])
    def test_get_notifier_follows_settings(self):
        self.assertTrue(get_notifier().has_adapter("mail"))

    @override_settings(CIRRUS_NOTIFICATION_ADAPTERS=[])
    def test_get_notifier_without_adapters(self):
        self.assertEqual(get_notifier().get_adapters(), {})


class NotifyTest(TestCase):
    """Tests for message delivery."""

    def setUp(self):
        self.sender = UserFactory()
        self.receiver = UserFactory()
        self.message = Message(subject="Hello", body="A file changed.")

    def test_notify_without_adapters_returns_false(self):
        self.assertFalse(Notifier().notify([self.receiver], self.sender, self.message))

    def test_database_adapter_stores_notification(self):
        notifier = build_notifier(["db"])

        self.assertTrue(notifier.notify([self.receiver], self.sender, self.message, {"node": "x"}))

        notification = Notification.objects.get(receiver=self.receiver)
        self.assertEqual(notification.subject, "Hello")
        self.assertEqual(notification.body, "A file changed.")
        self.assertEqual(notification.sender, self.sender)
        self.assertEqual(notification.context, {"node": "x"})

    def test_every_receiver_gets_a_copy(self):
        other = UserFactory()
        build_notifier(["db"]).notify([self.receiver, other], None, self.message)
        self.assertEqual(Notification.objects.count(), 2)

    def test_mail_adapter_sends_email(self):
        """Mail goes out through the background task (immediate in tests)."""
        build_notifier(["mail"]).notify([self.receiver], self.sender, self.message)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, "Hello")
        self.assertEqual(mail.outbox[0].to, [self.receiver.email])

    def test_mail_adapter_skips_users_without_email(self):
        receiver = UserFactory(no_email=True)
        self.assertFalse(MailAdapter().notify(receiver, None, self.message, {}))
        self.assertEqual(len(mail.outbox), 0)
