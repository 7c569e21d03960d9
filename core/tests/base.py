"""Base test classes for Cirrus tests."""

import shutil

from django.conf import settings
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase


class IsolatedStorageMixin:
    """
    Point the storage and upload temp roots at throwaway test directories.

    Directories are created per test class and removed afterwards.
    """

    @classmethod
    def setUpClass(cls):
        """Set up test storage directories."""
        super().setUpClass()
        cls.test_storage_root = settings.BASE_DIR / 'storage_root_test'
        cls.test_temp_root = settings.BASE_DIR / 'upload_tmp_test'
        cls.test_storage_root.mkdir(exist_ok=True)
        cls.test_temp_root.mkdir(exist_ok=True)

    @classmethod
    def tearDownClass(cls):
        """Clean up test storage directories."""
        super().tearDownClass()
        for root in (cls.test_storage_root, cls.test_temp_root):
            if root.exists():
                shutil.rmtree(root)

    def setUp(self):
        super().setUp()
        from core.tests.factories import UserFactory

        self.user = UserFactory()

        self.settings_override = override_settings(
            CIRRUS_STORAGE_ROOT=self.test_storage_root,
            CIRRUS_UPLOAD_TEMP_ROOT=self.test_temp_root,
            CIRRUS_NOTIFICATION_ADAPTERS=['db'],
        )
        self.settings_override.enable()

    def tearDown(self):
        """Clean up test-specific storage after each test."""
        super().tearDown()
        self.settings_override.disable()

        for root in (self.test_storage_root, self.test_temp_root):
            user_storage = root / str(self.user.id)
            if user_storage.exists():
                shutil.rmtree(user_storage)


class CirrusTestCase(IsolatedStorageMixin, TestCase):
    """Base test case for service level tests."""


class CirrusAPITestCase(IsolatedStorageMixin, APITestCase):
    """Base test case for API tests, authenticated as ``self.user``."""

    def setUp(self):
        super().setUp()
        self.authenticate()

    def authenticate(self, user=None):
        """Authenticate requests as ``user`` (default: self.user)."""
        self.client.force_authenticate(user=user or self.user)

    def assertErrorCode(self, response, status_code, code):
        """Assert the error envelope of a failed request."""
        self.assertEqual(response.status_code, status_code, response.content)
        self.assertEqual(response.json()['error']['code'], code)
