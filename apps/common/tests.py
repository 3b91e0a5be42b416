from unittest import mock

from django.test import SimpleTestCase, override_settings

from apps.common.money import format_cents, from_cents
from config.structlog_config import configure_from_settings


class LoggingSettingsTests(SimpleTestCase):
    @override_settings(LOG_LEVEL="WARNING", JSON_LOGS=True)
    def test_logging_is_configured_from_settings(self):
        with mock.patch("config.structlog_config.configure_logging") as configure:
            configure_from_settings()
        configure.assert_called_once_with(level="WARNING", json_logs=True)


class MoneyTests(SimpleTestCase):
    def test_cents_render_with_two_decimals(self):
        self.assertEqual(format_cents(15003), "150.03")
        self.assertEqual(format_cents(0), "0.00")
        self.assertEqual(str(from_cents(89999)), "899.99")
