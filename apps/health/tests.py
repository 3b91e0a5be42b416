from unittest import mock

from django.db.utils import OperationalError
from rest_framework.test import APITestCase


class HealthTests(APITestCase):
    def test_health_needs_no_credentials(self):
        response = self.client.get("/health/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"status": "ok", "database": "ok"})

    def test_health_reports_unreachable_database(self):
        with mock.patch("apps.health.views.connection.ensure_connection", side_effect=OperationalError("down")):
            response = self.client.get("/health/")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["database"], "unavailable")
