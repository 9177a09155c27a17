from decimal import Decimal

import pytest

from core.exceptions import InactiveItem, InsufficientStock, MaximumStockExceeded
from inventory.models import InventoryAlert, InventoryItem, InventoryTransaction
from inventory.stock import record_transaction, retire_item


@pytest.fixture
def towels(db):
    return InventoryItem.objects.create(
        name='Bath Towel', sku='LIN-001', unit='pcs',
        current_stock=Decimal('10'), minimum_stock=Decimal('5'),
    )


def _sale(item, quantity):
    return record_transaction(item_id=item.pk, transaction_type='sale', quantity=Decimal(quantity))


@pytest.mark.django_db
class TestStockLedger:
    def test_oversell_rejected_and_low_stock_alert_once(self, towels):
        with pytest.raises(InsufficientStock):
            _sale(towels, '11')
        towels.refresh_from_db()
        assert towels.current_stock == Decimal('10')
        assert not InventoryTransaction.objects.exists()

        txn, alerts = _sale(towels, '4')
        assert (txn.previous_stock, txn.new_stock) == (Decimal('10'), Decimal('6'))
        assert alerts == []

        txn, alerts = _sale(towels, '2')
        towels.refresh_from_db()
        assert towels.current_stock == Decimal('4')
        assert [a.alert_type for a in alerts] == [InventoryAlert.TYPE_LOW_STOCK]
        assert InventoryAlert.objects.count() == 1

    def test_sell_out(self, towels):
        _, alerts = _sale(towels, '10')
        assert [a.alert_type for a in alerts] == [InventoryAlert.TYPE_OUT_OF_STOCK]

    def test_purchase_adds_and_records_value(self, towels):
        txn, _ = record_transaction(
            item_id=towels.pk, transaction_type='purchase', quantity=Decimal('5'), unit_price=Decimal('120'),
        )
        assert txn.new_stock == Decimal('15')
        assert txn.total_amount == Decimal('600.00')

    def test_adjustment_sets_level(self, towels):
        txn, _ = record_transaction(item_id=towels.pk, transaction_type='adjustment', quantity=Decimal('3'))
        assert txn.new_stock == Decimal('3')

    def test_maximum_stock(self, towels):
        towels.maximum_stock = Decimal('20')
        towels.save()
        with pytest.raises(MaximumStockExceeded):
            record_transaction(item_id=towels.pk, transaction_type='purchase', quantity=Decimal('11'))
        _, alerts = record_transaction(item_id=towels.pk, transaction_type='purchase', quantity=Decimal('9'))
        assert [a.alert_type for a in alerts] == [InventoryAlert.TYPE_OVERSTOCK]

    def test_inactive_item(self, towels):
        towels.is_active = False
        towels.save()
        with pytest.raises(InactiveItem):
            _sale(towels, '1')

    def test_retire_item_with_history_deactivates(self, towels):
        _sale(towels, '1')
        assert retire_item(towels) is False
        towels.refresh_from_db()
        assert towels.is_active is False


@pytest.mark.django_db
class TestInventoryApi:
    def test_duplicate_sku_is_400(self, admin_client, towels):
        resp = admin_client.post('/api/inventory/items/', {'name': 'Hand Towel', 'sku': 'LIN-001'}, format='json')
        assert resp.status_code == 400
        assert 'sku' in resp.json()['error']

    def test_blank_skus_do_not_collide(self, admin_client):
        for name in ('Soap', 'Shampoo'):
            resp = admin_client.post('/api/inventory/items/', {'name': name, 'sku': ''}, format='json')
            assert resp.status_code == 201
        assert InventoryItem.objects.filter(sku__isnull=True).count() == 2

    def test_transaction_endpoint_returns_alerts(self, admin_client, towels):
        resp = admin_client.post(
            '/api/inventory/transactions/',
            {'item': towels.pk, 'transaction_type': 'sale', 'quantity': '6'},
            format='json',
        )
        assert resp.status_code == 201
        body = resp.json()
        assert Decimal(body['transaction']['new_stock']) == Decimal('4')
        assert body['alerts'][0]['alert_type'] == 'low_stock'

    def test_insufficient_stock_error_body(self, admin_client, towels):
        resp = admin_client.post(
            '/api/inventory/transactions/',
            {'item': towels.pk, 'transaction_type': 'damage', 'quantity': '50'},
            format='json',
        )
        assert resp.status_code == 400
        assert resp.json()['error'].startswith('Insufficient stock')

    def test_resolve_alert(self, admin_client, admin_user, towels):
        _sale(towels, '6')
        alert = InventoryAlert.objects.get()
        resp = admin_client.patch(f'/api/inventory/alerts/{alert.pk}/', {'is_resolved': True}, format='json')
        assert resp.status_code == 200
        alert.refresh_from_db()
        assert alert.is_resolved and alert.resolved_by == admin_user
        resp = admin_client.get('/api/inventory/alerts/?resolved=false')
        assert resp.json()['count'] == 0
