from django.core.management.base import BaseCommand
from django.urls import reverse

from qnbpay.checkout import get_webhook_secret


class Command(BaseCommand):
    help = "Print the webhook URL to paste into the QNBPay merchant panel"

    def add_arguments(self, parser):
        parser.add_argument("--base-url", default="", help="e.g. https://shop.example")

    def handle(self, *args, **opts):
        url = f"{reverse('qnbpay:webhook')}?key={get_webhook_secret()}"
        self.stdout.write(opts["base_url"].rstrip("/") + url)
