"""
Resolve payments that never received a gateway callback.

Usage:
    python manage.py reconcile_payments [--older-than 15] [--limit 100]
"""

from datetime import timedelta

from django.core.management.base import BaseCommand

from payment.services.service import PaymentService


class Command(BaseCommand):
    help = "Query the gateways for PENDING payments and settle the ones with a final result"

    def add_arguments(self, parser):
        parser.add_argument(
            "--older-than",
            type=int,
            default=15,
            help="Only check payments created at least this many minutes ago (default: 15)",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum number of payments to check in one run (default: 100)",
        )

    def handle(self, *args, **options):
        summary = PaymentService().reconcile_pending(
            older_than=timedelta(minutes=options["older_than"]),
            limit=options["limit"],
        )
        self.stdout.write(
            self.style.SUCCESS(
                f"Checked: {summary['checked']} | Settled: {summary['settled']} | "
                f"Still pending: {summary['pending']} | Errors: {summary['errors']}"
            )
        )
