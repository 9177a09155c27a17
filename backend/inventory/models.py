"""
Inventory: categories, stock items, stock transactions, threshold alerts.
InventoryItem.current_stock changes only through InventoryTransaction (see stock.record_transaction).
"""
from decimal import Decimal
from django.db import models
from django.conf import settings
from django.utils import timezone


class InventoryCategory(models.Model):
    """Reference data: linen, toiletries, food & beverage, cleaning supplies."""
    name = models.CharField(max_length=64, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'inventory_categories'
        ordering = ['name']
        verbose_name_plural = 'inventory categories'

    def __str__(self):
        return self.name


class InventoryItem(models.Model):
    """Stock-keeping item with minimum/maximum thresholds."""
    name = models.CharField(max_length=128)
    sku = models.CharField(max_length=64, unique=True, null=True, blank=True)
    barcode = models.CharField(max_length=64, unique=True, null=True, blank=True)
    category = models.ForeignKey(
        InventoryCategory, on_delete=models.PROTECT, null=True, blank=True, related_name='items'
    )
    description = models.TextField(blank=True)
    unit = models.CharField(max_length=16, default='pcs')
    current_stock = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    minimum_stock = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    maximum_stock = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    supplier = models.CharField(max_length=128, blank=True)
    location = models.CharField(max_length=64, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'inventory_items'
        ordering = ['name']
        indexes = [models.Index(fields=['category']), models.Index(fields=['is_active'])]

    def __str__(self):
        return f'{self.name} ({self.current_stock} {self.unit})'


class InventoryTransaction(models.Model):
    """One stock movement with the stock level before and after."""
    TYPE_PURCHASE = 'purchase'
    TYPE_SALE = 'sale'
    TYPE_ADJUSTMENT = 'adjustment'
    TYPE_RETURN = 'return'
    TYPE_DAMAGE = 'damage'
    TYPE_EXPIRY = 'expiry'
    TYPE_TRANSFER = 'transfer'
    TYPE_CHOICES = [
        (TYPE_PURCHASE, 'Purchase'),
        (TYPE_SALE, 'Sale'),
        (TYPE_ADJUSTMENT, 'Adjustment'),
        (TYPE_RETURN, 'Return'),
        (TYPE_DAMAGE, 'Damage'),
        (TYPE_EXPIRY, 'Expiry'),
        (TYPE_TRANSFER, 'Transfer'),
    ]
    item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name='transactions')
    transaction_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0'))
    previous_stock = models.DecimalField(max_digits=12, decimal_places=2)
    new_stock = models.DecimalField(max_digits=12, decimal_places=2)
    reference_number = models.CharField(max_length=64, blank=True)
    supplier = models.CharField(max_length=128, blank=True)
    notes = models.TextField(blank=True)
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_transactions'
    )
    transaction_date = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'inventory_transactions'
        ordering = ['-transaction_date', '-id']
        indexes = [models.Index(fields=['item', 'transaction_date']), models.Index(fields=['transaction_type'])]

    def __str__(self):
        return f'{self.transaction_type} {self.quantity} x {self.item.name}'


class InventoryAlert(models.Model):
    """Threshold alert raised by a stock movement."""
    TYPE_LOW_STOCK = 'low_stock'
    TYPE_OUT_OF_STOCK = 'out_of_stock'
    TYPE_OVERSTOCK = 'overstock'
    TYPE_CHOICES = [
        (TYPE_LOW_STOCK, 'Low Stock'),
        (TYPE_OUT_OF_STOCK, 'Out of Stock'),
        (TYPE_OVERSTOCK, 'Overstock'),
    ]
    item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name='alerts')
    alert_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    message = models.CharField(max_length=256)
    current_stock = models.DecimalField(max_digits=12, decimal_places=2)
    threshold = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_read = models.BooleanField(default=False)
    is_resolved = models.BooleanField(default=False)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='resolved_alerts'
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'inventory_alerts'
        ordering = ['-created_at']
        indexes = [models.Index(fields=['alert_type']), models.Index(fields=['is_resolved'])]

    def __str__(self):
        return f'{self.alert_type}: {self.item.name}'
