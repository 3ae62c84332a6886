# tenants/models/payment_config.py

from django.db import models


class StorePaymentConfig(models.Model):
    """
    Per-store gateway settings.

    Credentials left blank fall back to the platform credentials in
    settings.PAYMENTS. The access token and webhook secret are never serialized
    to public endpoints.
    """

    PROVIDER_MERCADOPAGO = "mercadopago"
    PROVIDER_CHOICES = [
        (PROVIDER_MERCADOPAGO, "Mercado Pago"),
    ]

    store = models.OneToOneField(
        "tenants.Store",
        on_delete=models.CASCADE,
        related_name="payment_config",
    )

    provider = models.CharField(max_length=32, choices=PROVIDER_CHOICES, default=PROVIDER_MERCADOPAGO)
    enabled = models.BooleanField(default=False)

    access_token = models.CharField(max_length=255, blank=True, default="")
    public_key = models.CharField(max_length=255, blank=True, default="")
    webhook_secret = models.CharField(max_length=255, blank=True, default="")

    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        state = "enabled" if self.enabled else "disabled"
        return f"{self.store} | {self.provider} | {state}"
