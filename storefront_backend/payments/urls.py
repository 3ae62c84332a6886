# payments/urls.py

from django.urls import path

from payments.views import (
    PaymentIntentView,
    PaymentLookupView,
    PaymentRefundView,
    PaymentWebhookView,
    PublicPaymentConfigView,
)

urlpatterns = [
    path("webhook/", PaymentWebhookView.as_view(), name="payment-webhook"),
    path("intent/", PaymentIntentView.as_view(), name="payment-intent"),
    path("config/<uuid:store_id>/", PublicPaymentConfigView.as_view(), name="payment-config"),
    path("<uuid:order_id>/refund/", PaymentRefundView.as_view(), name="payment-refund"),
    path("<str:provider_payment_id>/", PaymentLookupView.as_view(), name="payment-lookup"),
]
