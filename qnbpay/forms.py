import re

from django import forms

EXPIRY_RE = re.compile(r"^\s*(\d{1,2})\s*/\s*(\d{2}|\d{4})\s*$")


class CardForm(forms.Form):
    """Card fields posted from the order-pay page.

    Posted names follow ``qnbpay-<field>`` with dashes, e.g. ``qnbpay-card-number``.
    """

    name_oncard = forms.CharField(max_length=100, error_messages={"required": "Card holder is required."})
    card_number = forms.CharField(max_length=32, error_messages={"required": "Card Number is required."})
    card_expiry = forms.CharField(max_length=9, error_messages={"required": "Card Expiry is required."})
    card_cvc = forms.CharField(max_length=4, error_messages={"required": "Card CVC is required."})
    installment = forms.IntegerField(min_value=1, max_value=12, required=False)

    def __init__(self, *args, require_installment=False, **kwargs):
        kwargs.setdefault("prefix", "qnbpay")
        super().__init__(*args, **kwargs)
        if require_installment:
            self.fields["installment"].required = True
            self.fields["installment"].error_messages["required"] = "Installment is required."

    def add_prefix(self, field_name):
        return f"{self.prefix}-{field_name.replace('_', '-')}" if self.prefix else field_name

    def clean_card_number(self):
        number = re.sub(r"\s+", "", self.cleaned_data["card_number"])
        if not number.isdigit() or not 12 <= len(number) <= 19:
            raise forms.ValidationError("Card Number is invalid.")
        return number

    def clean_card_expiry(self):
        match = EXPIRY_RE.match(self.cleaned_data["card_expiry"])
        if not match:
            raise forms.ValidationError("Card Expiry is invalid.")
        month, year = match.groups()
        if not 1 <= int(month) <= 12:
            raise forms.ValidationError("Card Expiry is invalid.")
        if len(year) == 2:
            year = "20" + year
        return month.zfill(2), year

    def clean_card_cvc(self):
        cvc = self.cleaned_data["card_cvc"].strip()
        if not cvc.isdigit() or len(cvc) not in (3, 4):
            raise forms.ValidationError("Card CVC is invalid.")
        return cvc

    def clean_installment(self):
        return self.cleaned_data.get("installment") or 1
