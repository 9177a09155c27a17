from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest

from core.exceptions import InvalidAmount, NotFound
from finance.models import LedgerPosting, Transaction
from hotel import billing
from hotel.booking import update_booking
from hotel.models import BillItem, Booking, Invoice, InvoiceItem, Payment, SplitPayment

PAYMENT_INFO = {'amount': Decimal('2360'), 'method': 'card', 'reference': 'AUTH-1'}


def _paid_invoice(booking, user=None, **overrides):
    fields = dict(
        booking_id=booking.pk, base_amount=Decimal('2000'), status=Invoice.STATUS_PAID,
        payment_info=dict(PAYMENT_INFO), created_by=user,
    )
    fields.update(overrides)
    return billing.create_invoice(**fields)


@pytest.mark.django_db
class TestCreateInvoice:
    def test_room_stay_line_and_totals(self, make_booking, main_account):
        booking = make_booking()
        outcome = billing.create_invoice(booking_id=booking.pk, base_amount=Decimal('2000'))
        invoice = outcome.invoice
        assert invoice.invoice_number.startswith('INV-')
        assert invoice.qr_code.startswith('data:image/png;base64,')
        item = invoice.items.get(item_type=InvoiceItem.TYPE_ROOM)
        assert item.quantity == Decimal('2')
        assert item.unit_price == Decimal('1000.00')
        assert item.tax_amount == Decimal('360.00')
        assert invoice.total_amount == Decimal('2360.00')
        assert outcome.payment is None
        assert outcome.revenue_posting is None

    def test_extra_charges(self, make_booking, main_account):
        booking = make_booking()
        outcome = billing.create_invoice(
            booking_id=booking.pk, base_amount=Decimal('2000'),
            invoice_items=[{'description': 'Minibar', 'quantity': 2, 'unit_price': '150', 'tax_rate': '5'}],
        )
        invoice = outcome.invoice
        assert invoice.items.count() == 2
        assert invoice.subtotal == Decimal('2300.00')
        assert invoice.tax_amount == Decimal('375.00')
        assert invoice.total_amount == Decimal('2675.00')

    def test_paid_invoice_records_payment_and_revenue(self, make_booking, main_account, admin_user):
        booking = make_booking()
        outcome = _paid_invoice(booking, admin_user)
        assert outcome.payment_created is True
        assert outcome.revenue_posting.status == LedgerPosting.STATUS_DONE
        credit = outcome.revenue_posting.transaction
        assert credit.category == Transaction.ACCOMMODATION_REVENUE
        assert credit.amount == Decimal('2360.00')
        main_account.refresh_from_db()
        assert main_account.balance == Decimal('2360.00')
        booking.refresh_from_db()
        assert booking.payment_status == Booking.PAYMENT_PAID

    def test_same_payment_twice_creates_one_payment(self, make_booking, main_account):
        booking = make_booking()
        first = _paid_invoice(booking)
        second = _paid_invoice(booking)
        assert first.payment_created is True
        assert second.payment_created is False
        assert second.payment.pk == first.payment.pk
        assert Payment.objects.filter(booking=booking).count() == 1
        main_account.refresh_from_db()
        assert main_account.balance == Decimal('2360.00')

    def test_idempotency_key_dedupes(self, make_booking, main_account):
        booking = make_booking()
        info = dict(PAYMENT_INFO, idempotency_key='req-42')
        _paid_invoice(booking, payment_info=info)
        second = _paid_invoice(booking, payment_info=info)
        assert second.payment_created is False
        assert Payment.objects.count() == 1

    def test_ledger_failure_keeps_invoice(self, make_booking, main_account):
        booking = make_booking()
        with mock.patch('finance.ledger.add_revenue_to_main_account', side_effect=RuntimeError('ledger down')):
            outcome = _paid_invoice(booking)
        assert Invoice.objects.filter(pk=outcome.invoice.pk).exists()
        assert outcome.revenue_posting.status == LedgerPosting.STATUS_FAILED
        assert 'ledger down' in outcome.revenue_posting.last_error
        main_account.refresh_from_db()
        assert main_account.balance == Decimal('0.00')

    def test_failed_posting_retried_once(self, make_booking, main_account):
        from finance.postings import process_pending
        booking = make_booking()
        with mock.patch('finance.ledger.add_revenue_to_main_account', side_effect=RuntimeError('ledger down')):
            _paid_invoice(booking)
        assert process_pending() == (1, 0)
        assert process_pending() == (0, 0)
        main_account.refresh_from_db()
        assert main_account.balance == Decimal('2360.00')

    def test_unknown_booking(self, db):
        with pytest.raises(NotFound):
            billing.create_invoice(booking_id=404, base_amount=Decimal('100'))


@pytest.mark.django_db
class TestPayments:
    def test_status_follows_create_update_delete(self, make_booking, main_account, admin_user):
        booking = make_booking()
        p1 = billing.record_payment(booking_id=booking.pk, amount=Decimal('1000'), method='cash').payment
        booking.refresh_from_db()
        assert booking.payment_status == Booking.PAYMENT_PARTIALLY_PAID

        p2 = billing.record_payment(booking_id=booking.pk, amount=Decimal('1360'), method='upi').payment
        booking.refresh_from_db()
        assert booking.payment_status == Booking.PAYMENT_PAID

        billing.update_payment(p2.pk, amount=Decimal('1000'), reason='Typo', processed_by=admin_user)
        booking.refresh_from_db()
        assert booking.payment_status == Booking.PAYMENT_PARTIALLY_PAID

        billing.delete_payment(p1.pk, processed_by=admin_user)
        billing.delete_payment(p2.pk, processed_by=admin_user)
        booking.refresh_from_db()
        assert booking.payment_status == Booking.PAYMENT_PENDING

    def test_update_posts_delta_and_audit_row(self, make_booking, main_account, admin_user):
        booking = make_booking()
        payment = billing.record_payment(booking_id=booking.pk, amount=Decimal('1000'), method='cash').payment
        billing.update_payment(payment.pk, amount=Decimal('1200'), reason='Late fee', processed_by=admin_user)
        main_account.refresh_from_db()
        assert main_account.balance == Decimal('1200.00')
        audit_row = Transaction.objects.get(is_modification=True)
        assert audit_row.original_amount == Decimal('1000.00')
        assert audit_row.amount == Decimal('1200.00')
        assert audit_row.modification_reason == 'Late fee'

    def test_duplicate_within_window_ignored(self, make_booking, main_account):
        booking = make_booking()
        first = billing.record_payment(booking_id=booking.pk, amount=Decimal('500'), method='cash')
        second = billing.record_payment(booking_id=booking.pk, amount=Decimal('500'), method='cash')
        assert first.created and not second.created
        assert Payment.objects.count() == 1

    def test_delete_reverses_balance(self, make_booking, main_account):
        booking = make_booking()
        payment = billing.record_payment(booking_id=booking.pk, amount=Decimal('700'), method='cash').payment
        result = billing.delete_payment(payment.pk, reason='Refunded')
        assert result['reversed_amount'] == Decimal('700.00')
        main_account.refresh_from_db()
        assert main_account.balance == Decimal('0.00')


@pytest.mark.django_db
class TestDeleteInvoice:
    def test_reverses_payments_and_removes_revenue(self, make_booking, main_account, admin_user):
        booking = make_booking()
        outcome = _paid_invoice(booking, admin_user)
        result = billing.delete_invoice(outcome.invoice.pk, reason='Issued in error', processed_by=admin_user)
        assert result['reversed_amount'] == Decimal('2360.00')
        assert result['payment_status'] == Booking.PAYMENT_PENDING
        assert not Invoice.objects.filter(pk=outcome.invoice.pk).exists()
        assert not Payment.objects.filter(booking=booking).exists()
        assert not Transaction.objects.filter(
            transaction_type=Transaction.TYPE_CREDIT, category__in=Transaction.REVENUE_CATEGORIES,
        ).exists()
        audit_row = Transaction.objects.get(is_modification=True)
        assert audit_row.category == Transaction.REFUNDS
        assert audit_row.modification_reason == 'Issued in error'


@pytest.mark.django_db
class TestBillItems:
    def test_hotel_tax_applied_and_booking_total_updated(self, make_booking, admin_user):
        booking = make_booking()
        item = billing.add_bill_item(
            booking.pk, item_name='Laundry', quantity=2, unit_price=Decimal('150'), added_by=admin_user,
        )
        assert item.total_price == Decimal('300.00')
        assert item.tax_rate == Decimal('18')
        assert item.tax_amount == Decimal('54.00')
        assert item.final_amount == Decimal('354.00')
        booking.refresh_from_db()
        assert booking.total_amount == Decimal('2714.00')
        assert booking.total_tax_amount == Decimal('414.00')
        assert booking.gst_amount == Decimal('360.00')
        assert booking.base_amount == Decimal('2000.00')

    def test_custom_gst_overrides_hotel_taxes(self, make_booking):
        booking = make_booking()
        item = billing.add_bill_item(
            booking.pk, item_name='Spa', unit_price=Decimal('1000'), discount=Decimal('100'),
            gst_applicable=True, gst_percentage=Decimal('5'),
        )
        assert item.tax_rate == Decimal('5')
        assert item.tax_amount == Decimal('45.00')
        assert item.final_amount == Decimal('945.00')

    def test_payment_status_follows_bill(self, make_booking, main_account):
        booking = make_booking()
        billing.record_payment(booking_id=booking.pk, amount=Decimal('2360'), method='cash')
        booking.refresh_from_db()
        assert booking.payment_status == Booking.PAYMENT_PAID

        item = billing.add_bill_item(booking.pk, item_name='Minibar', unit_price=Decimal('100'))
        booking.refresh_from_db()
        assert booking.total_amount == Decimal('2478.00')
        assert booking.payment_status == Booking.PAYMENT_PARTIALLY_PAID

        result = billing.remove_bill_item(booking.pk, item.pk)
        assert result['removed_amount'] == Decimal('118.00')
        assert result['payment_status'] == Booking.PAYMENT_PAID
        booking.refresh_from_db()
        assert booking.total_amount == Decimal('2360.00')
        assert not BillItem.objects.exists()

    def test_update_reprices_item(self, make_booking):
        booking = make_booking()
        item = billing.add_bill_item(booking.pk, item_name='Dinner', unit_price=Decimal('500'))
        updated = billing.update_bill_item(booking.pk, item.pk, quantity=Decimal('3'))
        assert updated.total_price == Decimal('1500.00')
        assert updated.final_amount == Decimal('1770.00')
        booking.refresh_from_db()
        assert booking.total_amount == Decimal('4130.00')

    def test_stay_reprice_keeps_bill_items(self, make_booking, stay_dates):
        booking = make_booking()
        billing.add_bill_item(booking.pk, item_name='Laundry', quantity=2, unit_price=Decimal('150'))
        check_in, _ = stay_dates
        updated = update_booking(booking.pk, check_out_date=check_in + timedelta(days=3))
        assert updated.total_amount == Decimal('3894.00')
        assert updated.total_tax_amount == Decimal('594.00')

    def test_item_of_other_booking_not_found(self, make_booking):
        first = make_booking()
        second = make_booking(guest_email='other@example.com')
        item = billing.add_bill_item(first.pk, item_name='Laundry', unit_price=Decimal('50'))
        with pytest.raises(NotFound):
            billing.remove_bill_item(second.pk, item.pk)
        assert BillItem.objects.filter(pk=item.pk).exists()

    def test_discount_above_amount_rejected(self, make_booking):
        booking = make_booking()
        with pytest.raises(InvalidAmount):
            billing.add_bill_item(booking.pk, item_name='Tour', unit_price=Decimal('100'), discount=Decimal('150'))
        booking.refresh_from_db()
        assert booking.total_amount == Decimal('2360.00')


@pytest.mark.django_db
class TestSplitPayments:
    def test_parts_must_match_total(self, make_booking):
        booking = make_booking()
        with pytest.raises(InvalidAmount):
            billing.setup_split_payments(booking.pk, [
                {'amount': Decimal('1000'), 'method': 'cash'},
                {'amount': Decimal('1000'), 'method': 'card'},
            ])
        assert not SplitPayment.objects.exists()

    def test_plan_replaced(self, make_booking):
        booking = make_booking()
        billing.setup_split_payments(booking.pk, [{'amount': Decimal('2360'), 'method': 'cash'}])
        parts = billing.setup_split_payments(booking.pk, [
            {'amount': Decimal('1360'), 'method': 'cash'},
            {'amount': Decimal('1000'), 'method': 'upi', 'description': 'Balance'},
        ])
        assert [(p.amount, p.method) for p in parts] == [(Decimal('1360.00'), 'cash'), (Decimal('1000.00'), 'upi')]
        assert SplitPayment.objects.filter(booking=booking).count() == 2
