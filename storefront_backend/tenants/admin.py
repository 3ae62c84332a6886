# tenants/admin.py

from django.contrib import admin

from tenants.models import Store, StorePaymentConfig


class StorePaymentConfigInline(admin.StackedInline):
    model = StorePaymentConfig
    extra = 0
    can_delete = False


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "currency", "tax_rate", "shipping_cost", "is_active")
    list_filter = ("is_active", "currency")
    search_fields = ("name", "code")
    inlines = [StorePaymentConfigInline]
