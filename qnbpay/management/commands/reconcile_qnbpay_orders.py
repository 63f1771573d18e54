import time

from django.core.management.base import BaseCommand
from django.utils import timezone

from qnbpay.checkout import COMPLETED_NOTE, PaymentProcessor
from qnbpay.exceptions import AlreadyProcessed, AuthFailure, LookupFailure
from qnbpay.models import OrderPayment


class Command(BaseCommand):
    help = "Ask QNBPay checkstatus about orders whose confirmation never arrived"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=50)
        parser.add_argument("--sleep", type=float, default=0.5)
        parser.add_argument("--older-than-minutes", type=int, default=15)

    def handle(self, *args, **opts):
        cutoff = timezone.now() - timezone.timedelta(minutes=opts["older_than_minutes"])
        qs = (
            OrderPayment.objects.select_related("order")
            .filter(state__in=[OrderPayment.PENDING_RETRY, OrderPayment.AWAITING_CONFIRMATION])
            .exclude(invoice_id="")
            .filter(updated_at__lt=cutoff)
            .order_by("updated_at")[: opts["max"]]
        )
        payments = list(qs)
        if not payments:
            self.stdout.write(self.style.SUCCESS("No pending QNBPay orders to reconcile."))
            return

        processor = PaymentProcessor()
        for payment in payments:
            order = payment.order
            if processor.is_paid(order):
                continue
            try:
                status = processor.verify(order, payment.invoice_id, "reconcile")
            except (AuthFailure, LookupFailure) as e:
                self.stdout.write(self.style.WARNING(f"#{order.pk} {payment.invoice_id}: {e.message}"))
                time.sleep(opts["sleep"])
                continue

            if status.paid:
                try:
                    processor.complete(order, COMPLETED_NOTE, transaction_id=payment.invoice_id)
                    self.stdout.write(self.style.SUCCESS(f"#{order.pk} -> {order.status}"))
                except AlreadyProcessed:
                    self.stdout.write(f"#{order.pk} already processed")
            else:
                self.stdout.write(f"#{order.pk} still unpaid ({status.description or status.status_code})")
            time.sleep(opts["sleep"])
