from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.billing.exceptions import ValidationError
from apps.billing.models import DerivedStatus, Payment, PaymentStatus
from apps.sales.models import Client, Sale
from apps.sales.services import create_sale, next_sale_id

User = get_user_model()


class SaleApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.seller = User.objects.create_user(username="seller", password="seller123", role="SELLER")
        self.collector = User.objects.create_user(username="collector", password="collector123", role="COLLECTOR")
        self.client_record = Client.objects.create(name="María González", phone="(555) 987-6543")

    def auth(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        return response

    def auth_as(self, username, password):
        token = self.auth(username, password).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def sale_payload(self, **overrides):
        payload = {
            "client": str(self.client_record.id),
            "description": "Refrigerador Samsung",
            "total_cents": 129999,
            "installment_count": 0,
        }
        payload.update(overrides)
        return payload

    def test_login_returns_tokens(self):
        response = self.auth("seller", "seller123")
        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.data)
        self.assertIn("refresh", response.data)

    def test_anonymous_requests_are_rejected(self):
        response = self.client.get("/api/v1/sales/")
        self.assertEqual(response.status_code, 401)

    def test_paid_in_full_sale_has_no_ledger_rows(self):
        self.auth_as("seller", "seller123")
        response = self.client.post("/api/v1/sales/", self.sale_payload(), format="json")

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["id"].startswith("VTA-"))
        self.assertEqual(response.data["client_name"], "María González")
        self.assertEqual(response.data["total"], "1299.99")
        self.assertEqual(response.data["paid_cents"], 129999)
        self.assertFalse(Payment.objects.filter(sale_id=response.data["id"]).exists())
        self.assertTrue(AuditLog.objects.filter(action="sale.create", entity_id=response.data["id"]).exists())

    def test_financed_sale_stores_initial_payment_as_slot_one(self):
        self.auth_as("seller", "seller123")
        response = self.client.post(
            "/api/v1/sales/",
            self.sale_payload(
                id="VTA-2025-003",
                total_cents=249999,
                installment_count=3,
                initial_payment={"amount_cents": 50000, "method": "DEBIT_CARD", "payment_date": "2025-05-15"},
            ),
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["id"], "VTA-2025-003")
        self.assertEqual(response.data["paid_cents"], 50000)
        initial = Payment.objects.get(sale_id="VTA-2025-003")
        self.assertEqual(initial.installment_number, 1)
        self.assertEqual(initial.status, PaymentStatus.COMPLETED)
        self.assertEqual(initial.created_by, self.seller)

    def test_financed_sale_requires_initial_payment(self):
        self.auth_as("seller", "seller123")
        response = self.client.post("/api/v1/sales/", self.sale_payload(installment_count=6), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid")
        self.assertIn("initial_payment", response.data["fields"])
        self.assertFalse(Sale.objects.exists())

    def test_single_installment_must_be_paid_in_one_go(self):
        self.auth_as("seller", "seller123")
        response = self.client.post(
            "/api/v1/sales/",
            self.sale_payload(
                installment_count=1,
                initial_payment={"amount_cents": 100000, "method": "CASH", "payment_date": "2025-05-15"},
            ),
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertFalse(Sale.objects.exists())
        self.assertFalse(Payment.objects.exists())

    def test_nonsensical_terms_are_rejected_as_invalid_plan(self):
        self.auth_as("seller", "seller123")
        negative = self.client.post("/api/v1/sales/", self.sale_payload(installment_count=-2), format="json")
        self.assertEqual(negative.status_code, 400)
        self.assertEqual(negative.data["code"], "invalid_plan")

        zero_total = self.client.post("/api/v1/sales/", self.sale_payload(total_cents=0), format="json")
        self.assertEqual(zero_total.status_code, 400)
        self.assertEqual(zero_total.data["code"], "invalid_plan")

    def test_reused_sale_id_is_rejected(self):
        self.auth_as("seller", "seller123")
        first = self.client.post("/api/v1/sales/", self.sale_payload(id="VTA-2025-001"), format="json")
        self.assertEqual(first.status_code, 201)

        second = self.client.post("/api/v1/sales/", self.sale_payload(id="VTA-2025-001"), format="json")
        self.assertEqual(second.status_code, 400)
        self.assertIn("id", second.data["fields"])

    def test_collector_cannot_register_sales(self):
        self.auth_as("collector", "collector123")
        response = self.client.post("/api/v1/sales/", self.sale_payload(), format="json")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.client.get("/api/v1/sales/").status_code, 200)

    def test_sale_list_filters(self):
        other = Client.objects.create(name="Pedro Ramírez")
        create_sale(sale_id="VTA-2025-001", client=self.client_record, total_cents=129999, installment_count=0)
        create_sale(
            sale_id="VTA-2025-004",
            client=other,
            total_cents=349999,
            installment_count=24,
            initial_payment={"amount_cents": 35000, "method": "CREDIT_CARD", "payment_date": "2025-05-12"},
        )

        self.auth_as("admin", "admin123")
        financed = self.client.get("/api/v1/sales/", {"financed": "true"})
        self.assertEqual([row["id"] for row in financed.data["results"]], ["VTA-2025-004"])

        by_name = self.client.get("/api/v1/sales/", {"q": "maría"})
        self.assertEqual([row["id"] for row in by_name.data["results"]], ["VTA-2025-001"])

        by_client = self.client.get("/api/v1/sales/", {"client": str(other.id)})
        self.assertEqual(by_client.data["count"], 1)

    def test_schedule_of_paid_in_full_sale_is_empty(self):
        create_sale(sale_id="VTA-2025-001", client=self.client_record, total_cents=129999, installment_count=0)
        self.auth_as("collector", "collector123")
        response = self.client.get("/api/v1/sales/VTA-2025-001/schedule/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["installments"], [])

    def test_down_payment_covering_total_leaves_nothing_overdue(self):
        create_sale(
            sale_id="VTA-2025-010",
            client=self.client_record,
            total_cents=10000,
            installment_count=3,
            initial_payment={"amount_cents": 10000, "method": "CASH", "payment_date": "2025-01-10"},
        )
        self.auth_as("collector", "collector123")
        response = self.client.get("/api/v1/sales/VTA-2025-010/schedule/", {"as_of": "2025-06-01"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["status"] for row in response.data["installments"]], [DerivedStatus.COMPLETED] * 3)
        self.assertEqual([row["amount_cents"] for row in response.data["installments"]], [10000, 0, 0])

    def test_client_create_and_search_by_phone(self):
        self.auth_as("seller", "seller123")
        response = self.client.post(
            "/api/v1/clients/",
            {"name": "  Juan Pérez ", "phone": "555-123-4567", "email": "juan@example.com"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["name"], "Juan Pérez")
        self.assertEqual(response.data["phone_normalized"], "5551234567")

        search = self.client.get("/api/v1/clients/", {"q": "555 123"})
        self.assertEqual([row["name"] for row in search.data["results"]], ["Juan Pérez"])

    def test_client_requires_name(self):
        self.auth_as("seller", "seller123")
        response = self.client.post("/api/v1/clients/", {"name": "   "}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("name", response.data["fields"])


class SaleServiceTests(TestCase):
    def setUp(self):
        self.client_record = Client.objects.create(name="Laura Sánchez")

    @override_settings(SALE_FOLIO_PREFIX="VTA")
    def test_sale_ids_follow_yearly_sequence(self):
        self.assertEqual(next_sale_id(2025), "VTA-2025-001")
        create_sale(sale_id="VTA-2025-001", client=self.client_record, total_cents=1000, installment_count=0)
        create_sale(sale_id="VTA-2025-003", client=self.client_record, total_cents=1000, installment_count=0)
        self.assertEqual(next_sale_id(2025), "VTA-2025-004")
        self.assertEqual(next_sale_id(2026), "VTA-2026-001")

    def test_generated_folio_taken_by_concurrent_sale_is_regenerated(self):
        create_sale(sale_id="VTA-2025-001", client=self.client_record, total_cents=1000, installment_count=0)

        with mock.patch("apps.sales.services.next_sale_id", side_effect=["VTA-2025-001", "VTA-2025-002"]):
            sale = create_sale(client=self.client_record, total_cents=2000, installment_count=0)

        self.assertEqual(sale.id, "VTA-2025-002")
        self.assertEqual(Sale.objects.get(pk="VTA-2025-001").total_cents, 1000)
        self.assertEqual(Sale.objects.count(), 2)

    def test_supplied_folio_taken_by_concurrent_sale_is_rejected(self):
        create_sale(sale_id="VTA-2025-001", client=self.client_record, total_cents=1000, installment_count=0)

        with mock.patch("apps.sales.services._sale_id_taken", return_value=False):
            with self.assertRaises(ValidationError) as ctx:
                create_sale(sale_id="VTA-2025-001", client=self.client_record, total_cents=2000, installment_count=0)

        self.assertIn("id", ctx.exception.fields)
        self.assertEqual(Sale.objects.get(pk="VTA-2025-001").total_cents, 1000)
        self.assertEqual(Sale.objects.count(), 1)

    def test_sales_are_immutable(self):
        sale = create_sale(sale_id="VTA-2025-005", client=self.client_record, total_cents=79999, installment_count=0)
        sale.total_cents = 1
        with self.assertRaises(DjangoValidationError):
            sale.save()
        self.assertEqual(Sale.objects.get(pk="VTA-2025-005").total_cents, 79999)

    def test_client_name_is_copied_onto_sale(self):
        sale = create_sale(sale_id="VTA-2025-005", client=self.client_record, total_cents=79999, installment_count=0)
        self.client_record.name = "Laura Sánchez Ruiz"
        self.client_record.save()
        self.assertEqual(Sale.objects.get(pk=sale.pk).client_name, "Laura Sánchez")
