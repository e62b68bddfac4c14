"""
Management command to expire overdue payments.

Runs QR auto-matching first so till payments that arrived in time are not
lost, then moves every open STK and QR payment past its expiry time to
``expired``. Meant to run from cron every minute or so.

Usage:
    python manage.py expire_payments
    python manage.py expire_payments --dry-run
"""

from django.core.management.base import BaseCommand
from django.utils import timezone
from apps.payments.models import PendingTransaction, QRCodePayment, OPEN_STATUSES
from apps.payments.services import expire_stale_payments, match_qr_payments


class Command(BaseCommand):
    help = 'Expire STK and QR payments past their expiry time'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be expired without making changes',
        )
        parser.add_argument(
            '--skip-matching',
            action='store_true',
            help='Do not run QR auto-matching before expiring',
        )

    def handle(self, *args, **options):
        if not options['skip_matching'] and not options['dry_run']:
            matched = match_qr_payments()
            if matched:
                self.stdout.write(f'Matched {matched} QR payment(s) to till payments.')

        now = timezone.now()

        if options['dry_run']:
            for model in (PendingTransaction, QRCodePayment):
                overdue = model.objects.filter(status__in=OPEN_STATUSES, expires_at__lte=now)
                for payment in overdue:
                    self.stdout.write(
                        f'  - {model.__name__} {payment.pk} | KES {payment.amount} | expired at {payment.expires_at}'
                    )
            self.stdout.write(self.style.WARNING('--dry-run mode: No changes made.'))
            return

        counts = expire_stale_payments(now=now)
        total = sum(counts.values())

        if total == 0:
            self.stdout.write(self.style.SUCCESS('No overdue payments.'))
            return

        for name, count in counts.items():
            self.stdout.write(f'  - {name}: {count}')
        self.stdout.write(self.style.SUCCESS(f'Expired {total} payment(s).'))
