# orders/management/commands/dispatch_notifications.py

from __future__ import annotations

from django.core.management.base import BaseCommand

from orders.services.notifications import dispatch_pending


class Command(BaseCommand):
    help = "Send pending or previously failed order notifications from the outbox."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=100, help="Max rows to attempt (default 100)")

    def handle(self, *args, **options):
        sent = dispatch_pending(limit=max(1, int(options["limit"])))
        self.stdout.write(self.style.SUCCESS(f"Dispatched {sent} notification(s)."))
