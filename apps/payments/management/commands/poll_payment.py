"""
Management command to follow an STK payment until it settles.

Talks to a running server over HTTP exactly as the till front end does.

Usage:
    python manage.py poll_payment <transaction_id> --url https://pos.example.com --token <jwt>
"""

from django.core.management.base import BaseCommand, CommandError
from apps.payments.poller import StatusPoller, PollError


class Command(BaseCommand):
    help = 'Poll an STK payment status until it is confirmed, failed or expired'

    def add_arguments(self, parser):
        parser.add_argument('transaction_id', help='PendingTransaction id')
        parser.add_argument('--url', default='http://localhost:8000', help='Server base URL')
        parser.add_argument('--token', default='', help='JWT access token')
        parser.add_argument('--attempts', type=int, default=20, help='Maximum status requests')
        parser.add_argument('--interval', type=float, default=2.0, help='Initial delay in seconds')
        parser.add_argument('--backoff', type=float, default=1.5, help='Delay multiplier')

    def handle(self, *args, **options):
        poller = StatusPoller(
            options['url'],
            access_token=options['token'] or None,
            max_attempts=options['attempts'],
            initial_delay=options['interval'],
            backoff=options['backoff'],
        )

        def report(payload):
            self.stdout.write(f"  status: {payload.get('status')}")

        try:
            result = poller.poll(options['transaction_id'], on_update=report)
        except PollError as e:
            raise CommandError(str(e))

        if result.timed_out:
            self.stdout.write(self.style.WARNING(
                f'Gave up after {result.attempts} attempts; last status {result.status}.'
            ))
        elif result.status == 'confirmed':
            receipt = result.payload.get('mpesa_receipt_number') or '-'
            self.stdout.write(self.style.SUCCESS(f'Payment confirmed (receipt {receipt}).'))
        else:
            self.stdout.write(self.style.ERROR(
                f"Payment {result.status}: {result.payload.get('result_desc', '')}"
            ))
