# orders/api/urls.py

from django.urls import path

from orders.views import (
    OrderDetailView,
    OrderListCreateView,
    OrderPaymentStatusView,
    OrderStatusView,
)

urlpatterns = [
    path("", OrderListCreateView.as_view(), name="order-list"),
    path("<uuid:pk>/", OrderDetailView.as_view(), name="order-detail"),
    path("<uuid:pk>/status/", OrderStatusView.as_view(), name="order-status"),
    path("<uuid:pk>/payment-status/", OrderPaymentStatusView.as_view(), name="order-payment-status"),
]
