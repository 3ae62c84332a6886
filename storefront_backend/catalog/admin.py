# catalog/admin.py

from django.contrib import admin

from catalog.models import Product, StockEntry


class StockEntryInline(admin.TabularInline):
    model = StockEntry
    extra = 0
    # Stock moves through the ledger; the admin only shows it
    readonly_fields = ("variant", "available", "updated_at")
    can_delete = False


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "sku", "store", "unit_price", "floor_price", "is_active")
    list_filter = ("is_active", "store")
    search_fields = ("name", "sku")
    inlines = [StockEntryInline]
