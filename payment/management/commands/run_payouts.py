"""
Run automatic seller payouts.

Usage:
    python manage.py run_payouts                     # long-running cron scheduler
    python manage.py run_payouts --once              # one batch over every auto-payout wallet
    python manage.py run_payouts --once --schedule weekly
"""

import logging

from django.core.management.base import BaseCommand, CommandError

from account.models import Wallet
from payment.scheduler import PayoutScheduler

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Process automatic payouts once, or run the payout scheduler"

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single payout batch and exit",
        )
        parser.add_argument(
            "--schedule",
            choices=[c for c in Wallet.PayoutSchedule.values if c != Wallet.PayoutSchedule.MANUAL],
            default=None,
            help="Only process wallets on this payout cadence (with --once)",
        )

    def handle(self, *args, **options):
        scheduler = PayoutScheduler()

        if not options["once"]:
            if options["schedule"]:
                raise CommandError("--schedule can only be used together with --once")
            self.stdout.write("Starting payout scheduler. Press Ctrl+C to stop.")
            scheduler.start()
            return

        schedule = options["schedule"]
        self.stdout.write(f"Running auto payouts (schedule={schedule or 'all'})...")
        try:
            results = scheduler.run_batch(schedule=schedule)
        except Exception as exc:
            logger.exception("Auto payout batch failed")
            raise CommandError(f"Auto payout batch failed: {exc}") from exc

        succeeded = sum(1 for r in results if r["success"])
        for result in results:
            if not result["success"]:
                self.stdout.write(self.style.WARNING(f"  user={result['user_id']} {result['code']}: {result['message']}"))
        self.stdout.write(
            self.style.SUCCESS(
                f"Processed: {len(results)} | Success: {succeeded} | Failed: {len(results) - succeeded}"
            )
        )
