from datetime import date

import structlog
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from apps.billing.models import DerivedStatus, Payment
from apps.billing.queries import query
from apps.common.money import format_cents

logger = structlog.get_logger(__name__)


class Command(BaseCommand):
    help = "Lista las cuotas vencidas (pendientes con fecha anterior al dia de corte)."

    def add_arguments(self, parser):
        parser.add_argument("--as-of", dest="as_of", help="Cut-off date (YYYY-MM-DD). Defaults to today.")
        parser.add_argument("--sale", dest="sale_id", help="Only report this sale.")

    def handle(self, *args, **options):
        as_of = timezone.localdate()
        if options.get("as_of"):
            try:
                as_of = date.fromisoformat(options["as_of"])
            except ValueError as exc:
                raise CommandError(f"Invalid --as-of date: {options['as_of']}") from exc

        payments = Payment.objects.select_related("sale")
        if options.get("sale_id"):
            payments = payments.filter(sale_id=options["sale_id"])

        rows = query(payments, status=DerivedStatus.OVERDUE, sort_key="date", as_of=as_of)
        total_cents = 0
        for payment, _ in rows:
            total_cents += payment.amount_cents
            self.stdout.write(
                f"{payment.sale_id}  #{payment.installment_number}/{payment.sale.installment_count}  "
                f"{payment.payment_date.isoformat()}  {format_cents(payment.amount_cents)}  {payment.sale.client_name}"
            )

        logger.info("collections.overdue_report", as_of=as_of.isoformat(), count=len(rows), amount_cents=total_cents)
        self.stdout.write(self.style.SUCCESS(f"Overdue payments: {len(rows)} ({format_cents(total_cents)})"))
