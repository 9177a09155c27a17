from django.contrib import admin
from .models import InventoryCategory, InventoryItem, InventoryTransaction, InventoryAlert


@admin.register(InventoryCategory)
class InventoryCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active']


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'category', 'current_stock', 'minimum_stock', 'maximum_stock', 'is_active']
    list_filter = ['category', 'is_active']
    search_fields = ['name', 'sku', 'barcode']
    readonly_fields = ['current_stock']


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(admin.ModelAdmin):
    list_display = ['id', 'item', 'transaction_type', 'quantity', 'previous_stock', 'new_stock', 'transaction_date']
    list_filter = ['transaction_type']


@admin.register(InventoryAlert)
class InventoryAlertAdmin(admin.ModelAdmin):
    list_display = ['id', 'item', 'alert_type', 'current_stock', 'is_read', 'is_resolved', 'created_at']
    list_filter = ['alert_type', 'is_resolved']
