import json

from django.core.management.base import BaseCommand, CommandError

from qnbpay.client import run_self_test


class Command(BaseCommand):
    help = "Check QNBPay credentials with a commission lookup and a test-card BIN lookup"

    def handle(self, *args, **opts):
        result = run_self_test()
        if not result["status"]:
            raise CommandError(result["message"])
        self.stdout.write(json.dumps(result, indent=2, default=str))
        for check in ("commissioncheck", "bincheck"):
            style = self.style.SUCCESS if result[check] else self.style.ERROR
            self.stdout.write(style(f"{check}: {'ok' if result[check] else 'failed'}"))
