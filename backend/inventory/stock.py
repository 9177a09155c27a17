"""
Stock ledger: every movement locks the item row, recomputes the stock level,
records the transaction and raises threshold alerts in one database transaction.
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from core.exceptions import InactiveItem, InsufficientStock, InvalidAmount, MaximumStockExceeded, NotFound
from core.notifications import notify
from finance.tax import money
from .models import InventoryAlert, InventoryItem, InventoryTransaction

logger = logging.getLogger(__name__)

INBOUND = (InventoryTransaction.TYPE_PURCHASE, InventoryTransaction.TYPE_RETURN)
OUTBOUND = (InventoryTransaction.TYPE_SALE, InventoryTransaction.TYPE_DAMAGE, InventoryTransaction.TYPE_EXPIRY)
# Both overwrite the level with the given quantity
ABSOLUTE = (InventoryTransaction.TYPE_ADJUSTMENT, InventoryTransaction.TYPE_TRANSFER)
NOTIFY_TYPES = (InventoryTransaction.TYPE_SALE, InventoryTransaction.TYPE_DAMAGE)

OVERSTOCK_RATIO = Decimal('0.9')


def compute_new_stock(item, transaction_type, quantity) -> Decimal:
    previous = item.current_stock
    if transaction_type in INBOUND:
        new_stock = previous + quantity
    elif transaction_type in OUTBOUND:
        if previous < quantity:
            raise InsufficientStock(
                f'Insufficient stock for {item.name}. Available: {previous}, requested: {quantity}.'
            )
        new_stock = previous - quantity
    elif transaction_type in ABSOLUTE:
        new_stock = quantity
    else:
        raise InvalidAmount(f'Unknown transaction type: {transaction_type}')
    if item.maximum_stock is not None and new_stock > item.maximum_stock:
        raise MaximumStockExceeded(
            f'Stock for {item.name} would reach {new_stock}, above the maximum of {item.maximum_stock}.'
        )
    return new_stock


def threshold_alerts(item, new_stock):
    """(alert_type, message, threshold) triples for the new stock level."""
    alerts = []
    if 0 < new_stock <= item.minimum_stock:
        alerts.append((
            InventoryAlert.TYPE_LOW_STOCK,
            f'{item.name} is running low ({new_stock} {item.unit} left).',
            item.minimum_stock,
        ))
    if new_stock == 0:
        alerts.append((InventoryAlert.TYPE_OUT_OF_STOCK, f'{item.name} is out of stock.', Decimal('0')))
    if item.maximum_stock is not None and new_stock > item.maximum_stock * OVERSTOCK_RATIO:
        alerts.append((
            InventoryAlert.TYPE_OVERSTOCK,
            f'{item.name} is above 90% of maximum stock ({new_stock}/{item.maximum_stock}).',
            item.maximum_stock,
        ))
    return alerts


def record_transaction(*, item_id, transaction_type, quantity, unit_price=Decimal('0'), processed_by=None,
                       reference_number='', supplier='', notes='', transaction_date=None):
    """Returns (InventoryTransaction, [InventoryAlert])."""
    quantity = Decimal(str(quantity))
    unit_price = money(unit_price)
    if quantity <= 0:
        raise InvalidAmount('Quantity must be greater than zero.')
    if unit_price < 0:
        raise InvalidAmount('Unit price cannot be negative.')

    with transaction.atomic():
        item = InventoryItem.objects.select_for_update().filter(pk=item_id).first()
        if item is None:
            raise NotFound('Inventory item not found.')
        if not item.is_active:
            raise InactiveItem(f'{item.name} is inactive.')
        previous = item.current_stock
        new_stock = compute_new_stock(item, transaction_type, quantity)

        InventoryItem.objects.filter(pk=item.pk).update(current_stock=new_stock, updated_at=timezone.now())
        item.current_stock = new_stock
        txn = InventoryTransaction.objects.create(
            item=item,
            transaction_type=transaction_type,
            quantity=quantity,
            unit_price=unit_price,
            total_amount=money(quantity * unit_price),
            previous_stock=previous,
            new_stock=new_stock,
            reference_number=reference_number or '',
            supplier=supplier or '',
            notes=notes or '',
            processed_by=processed_by,
            transaction_date=transaction_date or timezone.now(),
        )
        alerts = [
            InventoryAlert.objects.create(
                item=item, alert_type=alert_type, message=message,
                current_stock=new_stock, threshold=threshold,
            )
            for alert_type, message, threshold in threshold_alerts(item, new_stock)
        ]

    logger.info(
        'Stock %s for %s (#%s): %s -> %s, %s alerts',
        transaction_type, item.name, item.pk, previous, new_stock, len(alerts),
    )
    if transaction_type in NOTIFY_TYPES:
        notify(
            'inventory', f'Stock {transaction_type}',
            f'{quantity} {item.unit} of {item.name} ({previous} -> {new_stock})',
            item_id=item.pk, transaction_id=txn.pk,
        )
    return txn, alerts


def resolve_alert(alert, *, is_read=None, is_resolved=None, user=None):
    fields = []
    if is_read is not None:
        alert.is_read = is_read
        fields.append('is_read')
    if is_resolved is not None:
        alert.is_resolved = is_resolved
        alert.resolved_by = user if is_resolved else None
        alert.resolved_at = timezone.now() if is_resolved else None
        fields += ['is_resolved', 'resolved_by', 'resolved_at']
    if fields:
        alert.save(update_fields=fields)
    return alert


def retire_item(item) -> bool:
    """Delete an unused item; items with history are deactivated instead. Returns True when deleted."""
    if item.transactions.exists() or item.alerts.exists():
        item.is_active = False
        item.save(update_fields=['is_active', 'updated_at'])
        logger.info('Inventory item %s deactivated (has history)', item.pk)
        return False
    item.delete()
    return True
