# orders/admin.py

from django.contrib import admin

from orders.models import Order, OrderItem, OrderNotification, OrderStatusHistory, PaymentHistory


class _ReadOnlyInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class OrderItemInline(_ReadOnlyInline):
    model = OrderItem


class OrderStatusHistoryInline(_ReadOnlyInline):
    model = OrderStatusHistory


class PaymentHistoryInline(_ReadOnlyInline):
    model = PaymentHistory


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Read-only: transitions go through the API so stock, history and
    version checks are applied.
    """

    list_display = ("order_code", "store", "buyer", "status", "payment_status", "total", "created_at")
    list_filter = ("status", "payment_status", "store")
    search_fields = ("order_code", "provider_payment_id", "external_reference")
    inlines = [OrderItemInline, OrderStatusHistoryInline, PaymentHistoryInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(OrderNotification)
class OrderNotificationAdmin(admin.ModelAdmin):
    list_display = ("kind", "recipient", "status", "attempts", "created_at", "sent_at")
    list_filter = ("status", "kind")
    readonly_fields = ("order", "kind", "recipient", "payload", "attempts", "last_error", "created_at", "sent_at")
