from datetime import date
from io import StringIO
from unittest import mock
from uuid import uuid4

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.billing.exceptions import (
    AlreadyProcessedError,
    DuplicateInstallmentError,
    InvalidPlanError,
    NotFoundError,
    ValidationError,
)
from apps.billing.models import DerivedStatus, Payment, PaymentMethod, PaymentStatus
from apps.billing.planner import InstallmentSlot, add_months, generate_plan
from apps.billing.queries import DESCENDING, build_schedule, query, summarize
from apps.billing.registry import cancel_payment, process_payment, record_initial_payment, record_payment
from apps.billing.status import resolve_status
from apps.sales.models import Client, Sale
from apps.sales.services import create_sale

User = get_user_model()


class InstallmentPlannerTests(SimpleTestCase):
    def test_six_installments_put_rounding_remainder_on_last_slot(self):
        slots = generate_plan(
            total_cents=89999,
            installment_count=6,
            initial_amount_cents=15000,
            initial_date=date(2025, 5, 14),
        )

        self.assertEqual(slots[0], InstallmentSlot(1, date(2025, 5, 14), 15000))
        self.assertEqual([slot.amount_cents for slot in slots[1:5]], [14999] * 4)
        self.assertEqual(slots[5].amount_cents, 15003)
        self.assertEqual(sum(slot.amount_cents for slot in slots), 89999)
        self.assertEqual(
            [slot.due_date for slot in slots[1:]],
            [date(2025, 6, 14), date(2025, 7, 14), date(2025, 8, 14), date(2025, 9, 14), date(2025, 10, 14)],
        )

    def test_slot_amounts_always_add_up_to_total(self):
        for total in (1, 99, 10000, 89999, 123457):
            for count in (2, 3, 6, 12, 24):
                for initial in {1, max(total // 3, 1), total}:
                    slots = generate_plan(
                        total_cents=total,
                        installment_count=count,
                        initial_amount_cents=initial,
                        initial_date=date(2025, 1, 15),
                    )
                    self.assertEqual(len(slots), count)
                    self.assertEqual(sum(slot.amount_cents for slot in slots), total, (total, count, initial))

    def test_due_dates_are_calendar_months_from_first_slot(self):
        slots = generate_plan(
            total_cents=120000,
            installment_count=13,
            initial_amount_cents=20000,
            initial_date=date(2025, 1, 31),
        )
        first = slots[0].due_date
        for previous, slot in zip(slots, slots[1:]):
            self.assertLess(previous.due_date, slot.due_date)
            self.assertEqual(slot.due_date, add_months(first, slot.number - 1))
        self.assertEqual(slots[1].due_date, date(2025, 2, 28))
        self.assertEqual(slots[2].due_date, date(2025, 3, 31))
        self.assertEqual(slots[12].due_date, date(2026, 1, 31))

    def test_paid_in_full_sale_has_no_schedule(self):
        self.assertEqual(
            generate_plan(total_cents=129999, installment_count=0, initial_amount_cents=129999, initial_date="2025-05-15"),
            [],
        )

    def test_single_installment_is_the_initial_payment(self):
        slots = generate_plan(total_cents=24999, installment_count=1, initial_amount_cents=24999, initial_date="2025-05-15")
        self.assertEqual(slots, [InstallmentSlot(1, date(2025, 5, 15), 24999)])

    def test_identical_inputs_give_identical_plans(self):
        kwargs = {"total_cents": 79999, "installment_count": 12, "initial_amount_cents": 10000, "initial_date": "2025-05-11"}
        self.assertEqual(generate_plan(**kwargs), generate_plan(**kwargs))

    def test_nonsensical_terms_raise_invalid_plan(self):
        with self.assertRaises(InvalidPlanError):
            generate_plan(total_cents=10000, installment_count=-1, initial_amount_cents=100, initial_date="2025-05-11")
        with self.assertRaises(InvalidPlanError):
            generate_plan(total_cents=0, installment_count=3, initial_amount_cents=100, initial_date="2025-05-11")
        with self.assertRaises(InvalidPlanError):
            generate_plan(total_cents=10000, installment_count=3, initial_amount_cents=10001, initial_date="2025-05-11")

    def test_bad_initial_payment_raises_validation_error(self):
        with self.assertRaises(ValidationError):
            generate_plan(total_cents=10000, installment_count=3, initial_amount_cents=0, initial_date="2025-05-11")
        with self.assertRaises(ValidationError):
            generate_plan(total_cents=10000, installment_count=3, initial_amount_cents=100, initial_date="11/05/2025")
        with self.assertRaises(ValidationError):
            generate_plan(total_cents=100.5, installment_count=3, initial_amount_cents=100, initial_date="2025-05-11")


class StatusResolverTests(SimpleTestCase):
    def pending(self, due):
        return Payment(status=PaymentStatus.PENDING, payment_date=due, amount_cents=14999, installment_number=2)

    def test_unpaid_installment_past_due_is_overdue(self):
        self.assertEqual(resolve_status(self.pending(date(2025, 6, 14)), date(2025, 6, 20)), DerivedStatus.OVERDUE)

    def test_unpaid_installment_before_due_date_is_pending(self):
        self.assertEqual(resolve_status(self.pending(date(2025, 6, 14)), date(2025, 6, 10)), DerivedStatus.PENDING)

    def test_installment_due_today_is_still_pending(self):
        self.assertEqual(resolve_status(self.pending(date(2025, 6, 14)), date(2025, 6, 14)), DerivedStatus.PENDING)

    def test_completed_payment_stays_completed_after_its_date(self):
        payment = Payment(status=PaymentStatus.COMPLETED, payment_date=date(2025, 6, 14))
        self.assertEqual(resolve_status(payment, date(2026, 1, 1)), DerivedStatus.COMPLETED)

    def test_overdue_never_reverts_to_pending_as_time_passes(self):
        payment = self.pending(date(2025, 6, 14))
        statuses = [resolve_status(payment, date(2025, 6, day)) for day in range(1, 31)]
        first_overdue = statuses.index(DerivedStatus.OVERDUE)
        self.assertEqual(first_overdue, 14)
        self.assertTrue(all(value == DerivedStatus.OVERDUE for value in statuses[first_overdue:]))

    def test_cancelled_payment_has_no_status(self):
        payment = Payment(status=PaymentStatus.CANCELLED, payment_date=date(2025, 6, 14))
        with self.assertRaises(ValidationError):
            resolve_status(payment, date(2025, 6, 20))


class CollectionsQueryTests(SimpleTestCase):
    def setUp(self):
        self.juan = Sale(id="VTA-2025-002", client_name="Juan Pérez", total_cents=89999, installment_count=6)
        self.laura = Sale(id="VTA-2025-005", client_name="Laura Sánchez", total_cents=79999, installment_count=12)
        self.payments = [
            self.payment(self.juan, 1, 15000, date(2025, 5, 14), PaymentStatus.COMPLETED),
            self.payment(self.laura, 1, 10000, date(2025, 5, 11), PaymentStatus.COMPLETED),
            self.payment(self.juan, 2, 12500, date(2025, 6, 14)),
            self.payment(self.laura, 2, 5833, date(2025, 6, 11)),
            self.payment(self.juan, 3, 12500, date(2025, 7, 14)),
            self.payment(self.juan, 4, 12500, date(2025, 8, 14), PaymentStatus.CANCELLED),
        ]

    @staticmethod
    def payment(sale, number, amount, due, status=PaymentStatus.PENDING):
        return Payment(
            sale=sale,
            installment_number=number,
            amount_cents=amount,
            method=PaymentMethod.BANK_TRANSFER,
            payment_date=due,
            status=status,
        )

    def test_empty_filter_returns_every_active_row_in_input_order(self):
        rows = query(self.payments, as_of=date(2025, 6, 1))
        self.assertEqual([payment for payment, _ in rows], self.payments[:5])

    def test_search_matches_sale_id_client_name_and_payment_id_ignoring_case(self):
        self.assertEqual(len(query(self.payments, search_term="vta-2025-005", as_of=date(2025, 6, 1))), 2)
        self.assertEqual(len(query(self.payments, search_term="JUAN", as_of=date(2025, 6, 1))), 3)
        target = self.payments[3]
        rows = query(self.payments, search_term=str(target.id)[:13].upper(), as_of=date(2025, 6, 1))
        self.assertEqual([payment for payment, _ in rows], [target])

    def test_status_filter_uses_live_status(self):
        before = query(self.payments, status="overdue", as_of=date(2025, 6, 10))
        self.assertEqual(before, [])
        pending_before = query(self.payments, status="pending", as_of=date(2025, 6, 10))
        self.assertIn(self.payments[2], [payment for payment, _ in pending_before])

        after = query(self.payments, status="overdue", as_of=date(2025, 6, 20))
        self.assertEqual([payment for payment, _ in after], [self.payments[2], self.payments[3]])
        self.assertTrue(all(status == DerivedStatus.OVERDUE for _, status in after))

    def test_completed_filter(self):
        rows = query(self.payments, status="completed", as_of=date(2025, 6, 20))
        self.assertEqual([payment for payment, _ in rows], self.payments[:2])

    def test_sort_is_stable_in_both_directions(self):
        ascending = query(self.payments, sort_key="amount", as_of=date(2025, 6, 1))
        self.assertEqual(
            [payment for payment, _ in ascending],
            [self.payments[3], self.payments[1], self.payments[2], self.payments[4], self.payments[0]],
        )
        descending = query(self.payments, sort_key="amount", direction=DESCENDING, as_of=date(2025, 6, 1))
        self.assertEqual(
            [payment for payment, _ in descending],
            [self.payments[0], self.payments[2], self.payments[4], self.payments[1], self.payments[3]],
        )

    def test_sort_by_client_name_keeps_input_order_for_same_client(self):
        rows = query(self.payments, sort_key="client_name", direction=DESCENDING, as_of=date(2025, 6, 1))
        self.assertEqual(
            [payment for payment, _ in rows],
            [self.payments[1], self.payments[3], self.payments[0], self.payments[2], self.payments[4]],
        )

    def test_unknown_filter_or_sort_key_is_rejected(self):
        with self.assertRaises(ValidationError):
            query(self.payments, status="late")
        with self.assertRaises(ValidationError):
            query(self.payments, sort_key="created_by")
        with self.assertRaises(ValidationError):
            query(self.payments, sort_key="amount", direction="up")

    def test_summarize_groups_amounts_by_live_status(self):
        summary = summarize(query(self.payments, as_of=date(2025, 6, 12)))
        self.assertEqual(summary["completed"], {"count": 2, "amount_cents": 25000})
        self.assertEqual(summary["overdue"], {"count": 1, "amount_cents": 5833})
        self.assertEqual(summary["pending"], {"count": 2, "amount_cents": 25000})

    def test_schedule_merges_plan_with_ledger(self):
        juan_payments = [payment for payment in self.payments if payment.sale_id == "VTA-2025-002"]
        schedule = build_schedule(self.juan, juan_payments, as_of=date(2025, 7, 1))

        self.assertEqual([entry["number"] for entry in schedule], [1, 2, 3, 4, 5, 6])
        self.assertEqual(schedule[0]["status"], DerivedStatus.COMPLETED)
        self.assertEqual(schedule[1]["status"], DerivedStatus.OVERDUE)
        self.assertEqual(schedule[2]["status"], DerivedStatus.PENDING)
        self.assertIsNone(schedule[3]["payment"])
        self.assertEqual(schedule[3]["due_date"], date(2025, 8, 14))
        self.assertEqual(sum(entry["amount_cents"] for entry in schedule), 89999)

    def test_slots_covered_by_down_payment_are_never_overdue(self):
        sale = Sale(id="VTA-2025-010", client_name="Ana Torres", total_cents=10000, installment_count=3)
        initial = self.payment(sale, 1, 10000, date(2025, 1, 10), PaymentStatus.COMPLETED)

        schedule = build_schedule(sale, [initial], as_of=date(2025, 6, 1))

        self.assertEqual([entry["amount_cents"] for entry in schedule], [10000, 0, 0])
        self.assertEqual([entry["status"] for entry in schedule], [DerivedStatus.COMPLETED] * 3)
        self.assertTrue(all(entry["payment"] is None for entry in schedule[1:]))

    def test_schedule_is_empty_without_initial_payment(self):
        self.assertEqual(build_schedule(self.juan, self.payments[2:5], as_of=date(2025, 7, 1)), [])


class PaymentRegistryTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="collector_reg", password="collector123", role="COLLECTOR")
        self.client_record = Client.objects.create(name="Juan Pérez", phone="555-123-4567")
        self.sale = create_sale(
            sale_id="VTA-2025-002",
            client=self.client_record,
            total_cents=89999,
            installment_count=6,
            description="Lavadora LG 15kg",
            initial_payment={
                "amount_cents": 15000,
                "method": PaymentMethod.CASH,
                "payment_date": date(2025, 5, 14),
                "notes": "Pago inicial",
            },
            actor=self.user,
        )

    def record_second(self, **overrides):
        kwargs = {
            "sale_id": "VTA-2025-002",
            "installment_number": 2,
            "amount_cents": 14999,
            "method": PaymentMethod.BANK_TRANSFER,
            "payment_date": date(2025, 6, 14),
            "actor": self.user,
        }
        kwargs.update(overrides)
        return record_payment(**kwargs)

    def test_initial_payment_is_recorded_completed_on_slot_one(self):
        initial = Payment.objects.get(sale=self.sale, installment_number=1)
        self.assertEqual(initial.status, PaymentStatus.COMPLETED)
        self.assertEqual(initial.amount_cents, 15000)
        self.assertEqual(initial.processed_by, self.user)
        self.assertIsNotNone(initial.processed_at)

    def test_record_payment_starts_pending(self):
        payment = self.record_second()
        self.assertEqual(payment.status, PaymentStatus.PENDING)
        self.assertEqual(payment.created_by, self.user)
        self.assertTrue(AuditLog.objects.filter(action="payment.record", entity_id=str(payment.id)).exists())

    def test_second_record_for_same_slot_is_rejected_and_first_is_untouched(self):
        first = self.record_second()

        with self.assertRaises(DuplicateInstallmentError):
            self.record_second(amount_cents=20000, method=PaymentMethod.CASH)

        self.assertEqual(Payment.objects.filter(sale=self.sale, installment_number=2).count(), 1)
        stored = Payment.objects.get(pk=first.pk)
        self.assertEqual(stored.amount_cents, 14999)
        self.assertEqual(stored.method, PaymentMethod.BANK_TRANSFER)
        self.assertEqual(stored.status, PaymentStatus.PENDING)

    def test_unique_constraint_backs_up_the_slot_check(self):
        self.record_second()
        with mock.patch("apps.billing.registry._slot_is_taken", return_value=False):
            with self.assertRaises(DuplicateInstallmentError):
                self.record_second()
        self.assertEqual(Payment.objects.filter(sale=self.sale, installment_number=2).count(), 1)

    def test_database_rejects_two_active_rows_for_one_slot(self):
        self.record_second()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Payment.objects.create(
                    sale=self.sale,
                    installment_number=2,
                    amount_cents=14999,
                    method=PaymentMethod.CASH,
                    payment_date=date(2025, 6, 14),
                )

    def test_cancel_frees_the_slot(self):
        first = self.record_second()
        cancelled = cancel_payment(payment_id=first.id, actor=self.user)
        self.assertEqual(cancelled.status, PaymentStatus.CANCELLED)
        self.assertIsNotNone(cancelled.cancelled_at)

        replacement = self.record_second(amount_cents=15500)
        self.assertEqual(replacement.status, PaymentStatus.PENDING)
        self.assertEqual(Payment.objects.filter(sale=self.sale, installment_number=2).count(), 2)

    def test_omitted_slot_amount_and_date_come_from_schedule(self):
        payment = record_payment(sale_id="VTA-2025-002", method=PaymentMethod.CASH, actor=self.user)
        self.assertEqual(payment.installment_number, 2)
        self.assertEqual(payment.amount_cents, 14999)
        self.assertEqual(payment.payment_date, date(2025, 6, 14))

        last = record_payment(sale_id="VTA-2025-002", installment_number=6, method=PaymentMethod.CASH)
        self.assertEqual(last.amount_cents, 15003)
        self.assertEqual(last.payment_date, date(2025, 10, 14))

    def test_next_free_slot_skips_taken_ones(self):
        self.record_second()
        payment = record_payment(sale_id="VTA-2025-002", method=PaymentMethod.CASH)
        self.assertEqual(payment.installment_number, 3)

    def test_slot_outside_plan_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.record_second(installment_number=7)

    def test_non_positive_amount_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.record_second(amount_cents=0)
        self.assertFalse(Payment.objects.filter(sale=self.sale, installment_number=2).exists())

    def test_unknown_sale_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.record_second(sale_id="VTA-2099-999")

    def test_paid_in_full_sale_takes_no_installments(self):
        create_sale(sale_id="VTA-2025-001", client=self.client_record, total_cents=129999, installment_count=0)
        with self.assertRaises(ValidationError):
            self.record_second(sale_id="VTA-2025-001")

    def test_process_completes_and_overwrites_provisional_fields(self):
        payment = self.record_second(notes="Programado")
        processed = process_payment(
            payment_id=payment.id,
            method=PaymentMethod.CASH,
            payment_date=date(2025, 6, 18),
            notes="",
            actor=self.user,
        )
        self.assertEqual(processed.status, PaymentStatus.COMPLETED)
        self.assertEqual(processed.method, PaymentMethod.CASH)
        self.assertEqual(processed.payment_date, date(2025, 6, 18))
        self.assertEqual(processed.notes, "Programado")
        self.assertEqual(processed.processed_by, self.user)

        processed = Payment.objects.get(pk=payment.pk)
        self.assertEqual(processed.status, PaymentStatus.COMPLETED)

    def test_process_twice_fails_without_mutation(self):
        payment = self.record_second()
        process_payment(payment_id=payment.id, method=PaymentMethod.CASH, payment_date=date(2025, 6, 18))
        before = Payment.objects.get(pk=payment.pk)

        with self.assertRaises(AlreadyProcessedError):
            process_payment(
                payment_id=payment.id,
                method=PaymentMethod.CREDIT_CARD,
                payment_date=date(2025, 7, 1),
                notes="otra vez",
            )

        after = Payment.objects.get(pk=payment.pk)
        self.assertEqual(after.method, before.method)
        self.assertEqual(after.payment_date, before.payment_date)
        self.assertEqual(after.notes, before.notes)
        self.assertEqual(after.updated_at, before.updated_at)
        self.assertEqual(AuditLog.objects.filter(action="payment.process", entity_id=str(payment.id)).count(), 1)

    def test_terminal_payments_cannot_be_cancelled(self):
        initial = Payment.objects.get(sale=self.sale, installment_number=1)
        with self.assertRaises(AlreadyProcessedError):
            cancel_payment(payment_id=initial.id)

        payment = self.record_second()
        cancel_payment(payment_id=payment.id)
        with self.assertRaises(AlreadyProcessedError):
            cancel_payment(payment_id=payment.id)
        with self.assertRaises(AlreadyProcessedError):
            process_payment(payment_id=payment.id, method=PaymentMethod.CASH, payment_date=date(2025, 6, 18))

    def test_unknown_payment_is_not_found(self):
        with self.assertRaises(NotFoundError):
            process_payment(payment_id=uuid4(), method=PaymentMethod.CASH, payment_date=date(2025, 6, 18))
        with self.assertRaises(NotFoundError):
            cancel_payment(payment_id="not-a-payment")

    def test_initial_payment_cannot_exceed_total(self):
        with self.assertRaises(InvalidPlanError):
            create_sale(
                sale_id="VTA-2025-009",
                client=self.client_record,
                total_cents=50000,
                installment_count=3,
                initial_payment={"amount_cents": 50001, "method": PaymentMethod.CASH, "payment_date": date(2025, 5, 1)},
            )
        self.assertFalse(Sale.objects.filter(pk="VTA-2025-009").exists())

    def test_initial_payment_slot_cannot_be_recorded_twice(self):
        with self.assertRaises(DuplicateInstallmentError):
            record_initial_payment(
                sale=self.sale,
                amount_cents=15000,
                method=PaymentMethod.CASH,
                payment_date=date(2025, 5, 14),
            )


class PaymentApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin_pay", password="admin123", role="ADMIN")
        self.collector = User.objects.create_user(username="collector_pay", password="collector123", role="COLLECTOR")
        self.seller = User.objects.create_user(username="seller_pay", password="seller123", role="SELLER")
        self.client_record = Client.objects.create(name="Juan Pérez", phone="5551234567")

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def create_financed_sale(self):
        self.auth_as("seller_pay", "seller123")
        response = self.client.post(
            "/api/v1/sales/",
            {
                "id": "VTA-2025-002",
                "client": str(self.client_record.id),
                "description": "Lavadora LG 15kg",
                "total_cents": 89999,
                "installment_count": 6,
                "initial_payment": {"amount_cents": 15000, "method": "CASH", "payment_date": "2025-05-14"},
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        return response

    def record(self, installment_number=2, **extra):
        payload = {"sale_id": "VTA-2025-002", "installment_number": installment_number, "method": "BANK_TRANSFER"}
        payload.update(extra)
        return self.client.post("/api/v1/payments/", payload, format="json")

    def test_record_payment_fills_amount_and_date_from_schedule(self):
        self.create_financed_sale()
        self.auth_as("collector_pay", "collector123")

        response = self.record()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["amount_cents"], 14999)
        self.assertEqual(response.data["amount"], "149.99")
        self.assertEqual(response.data["date"], "2025-06-14")
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["total_installments"], 6)
        self.assertEqual(response.data["client_name"], "Juan Pérez")

    def test_duplicate_slot_returns_conflict(self):
        self.create_financed_sale()
        self.auth_as("collector_pay", "collector123")
        self.assertEqual(self.record().status_code, 201)

        response = self.record()
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "duplicate_installment")
        self.assertEqual(Payment.objects.filter(sale_id="VTA-2025-002", installment_number=2).count(), 1)

    def test_overdue_filter_is_evaluated_at_query_time(self):
        self.create_financed_sale()
        self.auth_as("collector_pay", "collector123")
        self.record()

        before = self.client.get("/api/v1/payments/", {"status": "overdue", "as_of": "2025-06-10"})
        self.assertEqual(before.status_code, 200)
        self.assertEqual(before.data["count"], 0)
        pending = self.client.get("/api/v1/payments/", {"status": "pending", "as_of": "2025-06-10"})
        self.assertEqual(pending.data["count"], 1)
        self.assertEqual(pending.data["results"][0]["derived_status"], "pending")

        after = self.client.get("/api/v1/payments/", {"status": "overdue", "as_of": "2025-06-20"})
        self.assertEqual(after.data["count"], 1)
        self.assertEqual(after.data["results"][0]["installment_number"], 2)
        self.assertEqual(after.data["results"][0]["derived_status"], "overdue")

    def test_list_supports_search_and_descending_sort(self):
        self.create_financed_sale()
        self.auth_as("collector_pay", "collector123")
        self.record(2)
        self.record(3)

        response = self.client.get("/api/v1/payments/", {"q": "juan", "ordering": "installment_number", "direction": "descending"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["installment_number"] for row in response.data["results"]], [3, 2, 1])

        invalid = self.client.get("/api/v1/payments/", {"ordering": "password"})
        self.assertEqual(invalid.status_code, 400)

    def test_process_then_process_again(self):
        self.create_financed_sale()
        self.auth_as("collector_pay", "collector123")
        payment_id = self.record().data["id"]

        response = self.client.post(
            f"/api/v1/payments/{payment_id}/process/",
            {"method": "CASH", "payment_date": "2025-06-18", "notes": "Pagado en tienda"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "completed")
        self.assertEqual(response.data["derived_status"], "completed")
        self.assertEqual(response.data["method"], "CASH")
        self.assertEqual(response.data["notes"], "Pagado en tienda")

        again = self.client.post(
            f"/api/v1/payments/{payment_id}/process/",
            {"method": "CREDIT_CARD"},
            format="json",
        )
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["code"], "already_processed")
        self.assertEqual(Payment.objects.get(pk=payment_id).method, PaymentMethod.CASH)

    def test_cancelled_payment_leaves_the_listing(self):
        self.create_financed_sale()
        self.auth_as("collector_pay", "collector123")
        payment_id = self.record().data["id"]

        response = self.client.post(f"/api/v1/payments/{payment_id}/cancel/", {}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "cancelled")
        self.assertIsNone(response.data["derived_status"])

        listing = self.client.get("/api/v1/payments/", {"sale": "VTA-2025-002"})
        self.assertEqual(listing.data["count"], 1)
        self.assertEqual(self.record().status_code, 201)

    def test_unknown_payment_returns_not_found(self):
        self.auth_as("collector_pay", "collector123")
        response = self.client.post(f"/api/v1/payments/{uuid4()}/process/", {"method": "CASH"}, format="json")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")

    def test_unknown_sale_returns_not_found(self):
        self.auth_as("collector_pay", "collector123")
        response = self.client.post(
            "/api/v1/payments/",
            {"sale_id": "VTA-2099-001", "installment_number": 2, "amount_cents": 1000, "method": "CASH", "payment_date": "2025-06-01"},
            format="json",
        )
        self.assertEqual(response.status_code, 404)

    def test_seller_can_view_but_not_manage_collections(self):
        self.create_financed_sale()
        initial = Payment.objects.get(sale_id="VTA-2025-002", installment_number=1)

        self.auth_as("seller_pay", "seller123")
        self.assertEqual(self.client.get("/api/v1/payments/").status_code, 200)
        self.assertEqual(self.record().status_code, 403)
        self.assertEqual(self.client.post(f"/api/v1/payments/{initial.id}/cancel/", {}, format="json").status_code, 403)

    def test_summary_counts_by_live_status(self):
        self.create_financed_sale()
        self.auth_as("admin_pay", "admin123")
        self.record(2)
        self.record(3)

        response = self.client.get("/api/v1/payments/summary/", {"as_of": "2025-07-01"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 3)
        self.assertEqual(response.data["by_status"]["completed"], {"count": 1, "amount_cents": 15000})
        self.assertEqual(response.data["by_status"]["overdue"], {"count": 1, "amount_cents": 14999})
        self.assertEqual(response.data["by_status"]["pending"], {"count": 1, "amount_cents": 14999})

    def test_installment_plan_preview(self):
        self.auth_as("seller_pay", "seller123")
        response = self.client.post(
            "/api/v1/installment-plans/",
            {"total_cents": 89999, "installment_count": 6, "initial_amount_cents": 15000, "initial_date": "2025-05-14"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total_cents"], 89999)
        self.assertEqual(len(response.data["slots"]), 6)
        self.assertEqual(response.data["slots"][1], {"number": 2, "due_date": "2025-06-14", "amount_cents": 14999, "amount": "149.99"})
        self.assertEqual(response.data["slots"][5]["amount_cents"], 15003)

        invalid = self.client.post(
            "/api/v1/installment-plans/",
            {"total_cents": 10000, "installment_count": 3, "initial_amount_cents": 20000, "initial_date": "2025-05-14"},
            format="json",
        )
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.data["code"], "invalid_plan")

    def test_sale_schedule_shows_live_status_per_slot(self):
        self.create_financed_sale()
        self.auth_as("collector_pay", "collector123")
        self.record(2)

        response = self.client.get("/api/v1/sales/VTA-2025-002/schedule/", {"as_of": "2025-06-20"})
        self.assertEqual(response.status_code, 200)
        installments = response.data["installments"]
        self.assertEqual(len(installments), 6)
        self.assertEqual(installments[0]["status"], "completed")
        self.assertEqual(installments[1]["status"], "overdue")
        self.assertIsNotNone(installments[1]["payment_id"])
        self.assertEqual(installments[2]["status"], "pending")
        self.assertIsNone(installments[2]["payment_id"])
        self.assertEqual(installments[5]["amount"], "150.03")


class OverdueReportCommandTests(TestCase):
    def test_reports_only_overdue_rows(self):
        client = Client.objects.create(name="Laura Sánchez")
        create_sale(
            sale_id="VTA-2025-005",
            client=client,
            total_cents=79999,
            installment_count=12,
            initial_payment={"amount_cents": 10000, "method": PaymentMethod.CASH, "payment_date": date(2025, 5, 11)},
        )
        record_payment(sale_id="VTA-2025-005", installment_number=2, method=PaymentMethod.CASH)
        record_payment(sale_id="VTA-2025-005", installment_number=3, method=PaymentMethod.CASH)

        out = StringIO()
        call_command("report_overdue_payments", "--as-of", "2025-06-20", stdout=out)
        output = out.getvalue()
        self.assertIn("VTA-2025-005  #2/12  2025-06-11", output)
        self.assertNotIn("#3/12", output)
        self.assertIn("Overdue payments: 1", output)
