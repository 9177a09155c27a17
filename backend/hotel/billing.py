"""
Invoices, payments and the per-booking bill (bill items, split payments).
Invoice + items (+ payment) commit together; revenue posting runs after commit through
the ledger outbox. Payment amendments post the delta to the main account and leave an
audit row in the ledger.
"""
import base64
import io
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

import qrcode
from django.conf import settings
from django.db import IntegrityError, connection, transaction
from django.db.models import Sum
from django.utils import timezone

from core.exceptions import ConflictError, InternalError, InvalidAmount, NotFound, ValidationError
from core.notifications import notify
from finance import ledger, postings
from finance.models import LedgerPosting, Transaction
from finance.tax import ZERO, calculate_taxes, load_tax_config, money
from .booking import apply_bill_items, refresh_payment_status
from .models import BillItem, Booking, Invoice, InvoiceItem, Payment, SplitPayment

logger = logging.getLogger(__name__)

ROOM_STAY_GST_RATE = Decimal('18')


@dataclass
class InvoiceOutcome:
    invoice: Invoice
    payment: Optional[Payment] = None
    payment_created: bool = False
    revenue_posting: Optional[LedgerPosting] = None


@dataclass
class PaymentOutcome:
    payment: Payment
    created: bool
    posting: Optional[LedgerPosting] = None


# ---------- Numbering / QR ----------
def generate_invoice_number() -> str:
    return f'INV-{int(time.time() * 1000)}{secrets.randbelow(1000):03d}'


def build_qr_code(invoice_number: str) -> str:
    """PNG data URL encoding the invoice number."""
    qr = qrcode.QRCode(version=1, box_size=6, border=2)
    qr.add_data(f'{settings.HOTEL_NAME}|{invoice_number}')
    qr.make(fit=True)
    img = qr.make_image(fill_color='black', back_color='white')
    buf = io.BytesIO()
    img.save(buf, format='PNG')
    b64 = base64.b64encode(buf.getvalue()).decode()
    return f'data:image/png;base64,{b64}'


def _apply_statement_timeout():
    if connection.vendor == 'postgresql':
        with connection.cursor() as cursor:
            cursor.execute('SET LOCAL statement_timeout = %s', [int(settings.INVOICE_TRANSACTION_TIMEOUT_MS)])


def _insert_invoice(**fields) -> Invoice:
    """Insert with a fresh number, retrying on number collisions."""
    attempts = int(settings.INVOICE_NUMBER_MAX_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        number = generate_invoice_number()
        if Invoice.objects.filter(invoice_number=number).exists():
            continue
        try:
            with transaction.atomic():
                return Invoice.objects.create(invoice_number=number, qr_code=build_qr_code(number), **fields)
        except IntegrityError:
            logger.warning('Invoice number %s collided (attempt %s/%s)', number, attempt, attempts)
    raise InternalError('Could not allocate a unique invoice number.')


# ---------- Line items ----------
def room_stay_item(booking, base_amount, discount_amount) -> InvoiceItem:
    nights = booking.nights or 1
    taxable = base_amount - discount_amount
    tax = money(taxable * ROOM_STAY_GST_RATE / 100)
    return InvoiceItem(
        item_type=InvoiceItem.TYPE_ROOM,
        description=f'{booking.room_type.name} - room {booking.room.number} ({nights} nights)',
        quantity=Decimal(nights),
        unit_price=money(base_amount / nights),
        discount=discount_amount,
        tax_rate=ROOM_STAY_GST_RATE,
        tax_amount=tax,
        final_amount=taxable + tax,
    )


def extra_charge_item(entry) -> InvoiceItem:
    quantity = Decimal(str(entry.get('quantity', 1)))
    unit_price = money(entry.get('unit_price'))
    discount = money(entry.get('discount'))
    tax_rate = Decimal(str(entry.get('tax_rate') or 0))
    if quantity <= 0 or unit_price < 0 or discount < 0 or tax_rate < 0:
        raise InvalidAmount(f'Invalid invoice line: {entry.get("description", "")}')
    taxable = money(quantity * unit_price) - discount
    if taxable < 0:
        raise InvalidAmount(f'Discount exceeds line amount: {entry.get("description", "")}')
    tax = money(taxable * tax_rate / 100)
    return InvoiceItem(
        item_type=InvoiceItem.TYPE_EXTRA,
        description=entry.get('description') or 'Extra charge',
        quantity=quantity,
        unit_price=unit_price,
        discount=discount,
        tax_rate=tax_rate,
        tax_amount=tax,
        final_amount=taxable + tax,
    )


# ---------- Payments ----------
def find_duplicate_payment(booking, amount, method, idempotency_key=None) -> Optional[Payment]:
    """
    Explicit idempotency key wins; without one, the same booking/amount/method
    inside the duplicate window counts as a repeat.
    """
    if idempotency_key:
        payment = Payment.objects.filter(idempotency_key=idempotency_key).first()
        if payment and payment.booking_id != booking.pk:
            raise ConflictError('Idempotency key already used for another booking.')
        return payment
    since = timezone.now() - timedelta(seconds=int(settings.DUPLICATE_PAYMENT_WINDOW_SECONDS))
    return (
        Payment.objects.filter(booking=booking, amount=money(amount), method=method, received_at__gte=since)
        .order_by('-received_at')
        .first()
    )


def _lock_booking(booking_id) -> Booking:
    booking = Booking.objects.select_for_update().select_related('room', 'room_type').filter(pk=booking_id).first()
    if booking is None:
        raise NotFound('Booking not found.')
    return booking


def record_payment(*, booking_id, amount, method, reference='', received_by=None, invoice_id=None,
                   idempotency_key=None, notes='') -> PaymentOutcome:
    amount = money(amount)
    if amount <= 0:
        raise InvalidAmount('Payment amount must be positive.')
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        invoice = None
        if invoice_id:
            invoice = Invoice.objects.filter(pk=invoice_id, booking=booking).first()
            if invoice is None:
                raise NotFound('Invoice not found for this booking.')
        duplicate = find_duplicate_payment(booking, amount, method, idempotency_key)
        if duplicate:
            logger.info('Duplicate payment for booking #%s ignored (existing #%s)', booking.pk, duplicate.pk)
            return PaymentOutcome(duplicate, created=False)
        payment = Payment.objects.create(
            booking=booking, invoice=invoice, amount=amount, method=method, reference=reference or '',
            idempotency_key=idempotency_key or None, notes=notes or '', received_by=received_by,
        )
        posting = postings.enqueue(
            LedgerPosting.KIND_PAYMENT_COMPLETED, booking.pk, amount,
            requested_by=received_by, payment_id=payment.pk, method=method,
            description=f'Payment for booking {booking.booking_reference} via {method}',
        )
        refresh_payment_status(booking)
    postings.process(posting.pk)
    logger.info('Payment #%s recorded for booking #%s: %s %s', payment.pk, booking.pk, amount, method)
    notify('payment', 'Payment received', f'{amount} via {method} for {booking.booking_reference}',
           booking_id=booking.pk, payment_id=payment.pk)
    return PaymentOutcome(payment, created=True, posting=posting)


def update_payment(payment_id, *, amount, method=None, reason='', processed_by=None) -> Payment:
    """Amend a payment; the difference is posted to the main account and audited."""
    new_amount = money(amount)
    if new_amount <= 0:
        raise InvalidAmount('Payment amount must be positive.')
    tolerance = Decimal(str(settings.MONEY_TOLERANCE))
    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related('booking').filter(pk=payment_id).first()
        if payment is None:
            raise NotFound('Payment not found.')
        booking = payment.booking
        original = payment.amount
        delta = new_amount - original
        payment.amount = new_amount
        if method:
            payment.method = method
        payment.save(update_fields=['amount', 'method', 'updated_at'])

        reference = ledger.Reference(Transaction.REF_PAYMENT, payment.pk)
        if abs(delta) > tolerance:
            if delta > 0:
                ledger.on_payment_completed(
                    booking.pk, delta, processed_by=processed_by, reference=reference,
                    description=f'Payment #{payment.pk} increased by {delta}',
                )
            else:
                ledger.on_payment_reversed(
                    booking.pk, -delta, processed_by=processed_by, reference=reference,
                    description=f'Payment #{payment.pk} reduced by {-delta}',
                )
        refresh_payment_status(booking)
        ledger.add_transaction(
            ledger.get_or_create_main_account(),
            Transaction.TYPE_CREDIT,
            Transaction.ACCOMMODATION_REVENUE,
            new_amount,
            reference=reference,
            description=f'Payment #{payment.pk} modified: {original} -> {new_amount}',
            processed_by=processed_by,
            is_modification=True,
            original_amount=original,
            modification_reason=reason or 'Payment amount updated',
        )
    logger.info('Payment #%s updated %s -> %s (booking #%s)', payment.pk, original, new_amount, booking.pk)
    return payment


def delete_payment(payment_id, *, reason='', processed_by=None) -> dict:
    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related('booking').filter(pk=payment_id).first()
        if payment is None:
            raise NotFound('Payment not found.')
        booking = payment.booking
        amount = payment.amount
        reference = ledger.Reference(Transaction.REF_PAYMENT, payment.pk)
        payment.delete()
        if amount > 0:
            ledger.on_payment_reversed(
                booking.pk, amount, processed_by=processed_by, reference=reference,
                description=f'Payment #{payment_id} deleted',
            )
        status = refresh_payment_status(booking)
        ledger.add_transaction(
            ledger.get_or_create_main_account(),
            Transaction.TYPE_DEBIT,
            Transaction.REFUNDS,
            amount,
            reference=reference,
            description=f'Payment #{payment_id} deleted ({amount})',
            processed_by=processed_by,
            is_modification=True,
            original_amount=amount,
            modification_reason=reason or 'Payment deleted',
        )
    logger.info('Payment #%s deleted (%s), booking #%s now %s', payment_id, amount, booking.pk, status)
    return {'payment_id': payment_id, 'reversed_amount': amount, 'payment_status': status}


def payment_summary(booking) -> dict:
    paid = booking.payments.aggregate(total=Sum('amount'))['total'] or ZERO
    return {
        'booking_id': booking.pk,
        'total_amount': booking.total_amount,
        'total_paid': paid,
        'balance_due': booking.total_amount - paid,
        'payment_status': booking.payment_status,
    }


# ---------- Bill items ----------
BILL_ITEM_FIELDS = (
    'item_name', 'description', 'quantity', 'unit_price', 'discount', 'gst_applicable', 'gst_percentage',
)


def price_bill_item(item, config=None) -> BillItem:
    """
    Fill total/tax/final amounts. Tax is the item's own GST when gst_applicable with a
    percentage, otherwise the hotel tax configuration on the discounted amount.
    """
    quantity = Decimal(str(item.quantity))
    unit_price = money(item.unit_price)
    discount = money(item.discount)
    if quantity <= 0 or unit_price < 0 or discount < 0:
        raise InvalidAmount(f'Invalid bill item: {item.item_name}')
    total_price = money(quantity * unit_price)
    taxable = total_price - discount
    if taxable < 0:
        raise InvalidAmount(f'Discount exceeds the amount of {item.item_name}.')
    if item.gst_applicable and item.gst_percentage:
        rate = Decimal(str(item.gst_percentage))
        if rate < 0:
            raise InvalidAmount('GST percentage cannot be negative.')
        tax = money(taxable * rate / 100)
    else:
        breakdown = calculate_taxes(taxable, config or load_tax_config())
        rate = sum((line.percentage for line in breakdown.taxes), Decimal('0'))
        tax = breakdown.total_tax_amount
    item.quantity, item.unit_price, item.discount = quantity, unit_price, discount
    item.total_price = total_price
    item.tax_rate = rate
    item.tax_amount = tax
    item.final_amount = taxable + tax
    return item


def recalculate_booking_total(booking) -> Booking:
    apply_bill_items(booking)
    booking.save(update_fields=['total_tax_amount', 'total_amount', 'updated_at'])
    refresh_payment_status(booking)
    return booking


def _lock_bill_item(booking, bill_item_id) -> BillItem:
    item = BillItem.objects.select_for_update().filter(pk=bill_item_id, booking=booking).first()
    if item is None:
        raise NotFound('Bill item not found.')
    return item


def add_bill_item(booking_id, *, item_name, unit_price, quantity=1, discount=ZERO, description='',
                  gst_applicable=False, gst_percentage=None, added_by=None) -> BillItem:
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        item = price_bill_item(BillItem(
            booking=booking, item_name=item_name, description=description or '', quantity=quantity,
            unit_price=unit_price, discount=discount or ZERO, gst_applicable=gst_applicable,
            gst_percentage=gst_percentage, added_by=added_by,
        ))
        item.save()
        recalculate_booking_total(booking)
    logger.info('Bill item #%s added to booking #%s: %s, total now %s',
                item.pk, booking.pk, item.final_amount, booking.total_amount)
    return item


def update_bill_item(booking_id, bill_item_id, **changes) -> BillItem:
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        item = _lock_bill_item(booking, bill_item_id)
        for field in BILL_ITEM_FIELDS:
            if field in changes and (changes[field] is not None or field == 'gst_percentage'):
                setattr(item, field, changes[field])
        price_bill_item(item)
        item.save()
        recalculate_booking_total(booking)
    logger.info('Bill item #%s updated on booking #%s, total now %s', item.pk, booking.pk, booking.total_amount)
    return item


def remove_bill_item(booking_id, bill_item_id) -> dict:
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        item = _lock_bill_item(booking, bill_item_id)
        removed = item.final_amount
        item.delete()
        recalculate_booking_total(booking)
    logger.info('Bill item #%s removed from booking #%s (%s)', bill_item_id, booking.pk, removed)
    return {
        'bill_item_id': bill_item_id,
        'removed_amount': removed,
        'total_amount': booking.total_amount,
        'payment_status': booking.payment_status,
    }


def setup_split_payments(booking_id, splits) -> list:
    """Replace the booking's split plan; the parts must add up to its total within MONEY_TOLERANCE."""
    tolerance = Decimal(str(settings.MONEY_TOLERANCE))
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        parts = [
            SplitPayment(
                booking=booking, amount=money(split['amount']), method=split['method'],
                description=split.get('description') or '',
            )
            for split in splits
        ]
        if not parts:
            raise ValidationError({'splits': ['At least one split is required.']})
        if any(part.amount <= 0 for part in parts):
            raise InvalidAmount('Split amounts must be positive.')
        total = sum((part.amount for part in parts), ZERO)
        if abs(total - booking.total_amount) > tolerance:
            raise InvalidAmount(f'Split payment total {total} does not match booking amount {booking.total_amount}.')
        booking.split_payments.all().delete()
        SplitPayment.objects.bulk_create(parts)
    return list(booking.split_payments.all())


# ---------- Invoices ----------
def create_invoice(*, booking_id, base_amount, discount_amount=ZERO, invoice_items=(),
                   status=Invoice.STATUS_PENDING, payment_info=None, due_date=None, notes='',
                   created_by=None) -> InvoiceOutcome:
    base_amount = money(base_amount)
    discount_amount = money(discount_amount)
    if base_amount < 0 or discount_amount < 0:
        raise InvalidAmount('Invoice amounts cannot be negative.')
    if discount_amount > base_amount:
        raise InvalidAmount('Discount exceeds the base amount.')

    booking = Booking.objects.select_related('room', 'room_type').filter(pk=booking_id).first()
    if booking is None:
        raise NotFound('Booking not found.')
    items = [room_stay_item(booking, base_amount, discount_amount)]
    items += [extra_charge_item(entry) for entry in invoice_items or ()]
    extras = items[1:]
    totals = {
        'subtotal': base_amount + sum((money(i.quantity * i.unit_price) for i in extras), ZERO),
        'discount_amount': sum((i.discount for i in items), ZERO),
        'tax_amount': sum((i.tax_amount for i in items), ZERO),
        'total_amount': sum((i.final_amount for i in items), ZERO),
    }
    breakdown = {
        'accommodation': str(base_amount - discount_amount),
        'extra_charges': str(sum((i.final_amount - i.tax_amount for i in extras), ZERO)),
        'taxes': str(totals['tax_amount']),
    }

    payment = None
    payment_created = False
    posting = None
    with transaction.atomic():
        _apply_statement_timeout()
        booking = _lock_booking(booking.pk)
        invoice = _insert_invoice(
            booking=booking, status=status, due_date=due_date, notes=notes or '', created_by=created_by,
            paid_date=timezone.now() if status == Invoice.STATUS_PAID else None, **totals,
        )
        for item in items:
            item.invoice = invoice
        InvoiceItem.objects.bulk_create(items)

        if status == Invoice.STATUS_PAID and payment_info:
            amount = money(payment_info.get('amount') or invoice.total_amount)
            method = payment_info.get('method') or Payment.METHOD_CASH
            idempotency_key = payment_info.get('idempotency_key')
            payment = find_duplicate_payment(booking, amount, method, idempotency_key)
            if payment is None:
                payment = Payment.objects.create(
                    booking=booking, invoice=invoice, amount=amount, method=method,
                    reference=payment_info.get('reference') or '',
                    idempotency_key=idempotency_key or None,
                    received_by=created_by,
                )
                payment_created = True
                posting = postings.enqueue(
                    LedgerPosting.KIND_INVOICE_REVENUE, booking.pk, amount,
                    requested_by=created_by, payment_id=payment.pk, method=method, breakdown=breakdown,
                    description=f'Invoice {invoice.invoice_number} for booking {booking.booking_reference}',
                )
            else:
                logger.info(
                    'Invoice %s: payment for booking #%s already recorded (#%s)',
                    invoice.invoice_number, booking.pk, payment.pk,
                )
            refresh_payment_status(booking)

    if posting is not None:
        posting = postings.process(posting.pk)
    logger.info('Invoice %s created for booking #%s: %s', invoice.invoice_number, booking.pk, invoice.total_amount)
    notify('invoice', 'Invoice generated', f'{invoice.invoice_number} for {booking.guest_name}',
           booking_id=booking.pk, invoice_id=invoice.pk)
    return InvoiceOutcome(invoice, payment, payment_created, posting)


def update_invoice_status(invoice_id, status) -> Invoice:
    invoice = Invoice.objects.filter(pk=invoice_id).first()
    if invoice is None:
        raise NotFound('Invoice not found.')
    if status not in dict(Invoice.STATUS_CHOICES):
        raise ValidationError({'status': [f'Invalid status: {status}']})
    invoice.status = status
    invoice.paid_date = timezone.now() if status == Invoice.STATUS_PAID else None
    invoice.save(update_fields=['status', 'paid_date'])
    return invoice


def delete_invoice(invoice_id, *, reason='', processed_by=None) -> dict:
    """Reverse the invoice's payments, delete it with its payments and revenue rows, audit the reversal."""
    with transaction.atomic():
        invoice = Invoice.objects.select_for_update().select_related('booking').filter(pk=invoice_id).first()
        if invoice is None:
            raise NotFound('Invoice not found.')
        booking = invoice.booking
        number = invoice.invoice_number
        payments = list(invoice.payments.all())
        payment_ids = [p.pk for p in payments]
        reversed_total = ZERO
        for p in payments:
            if p.amount > 0:
                ledger.on_payment_reversed(
                    booking.pk, p.amount, processed_by=processed_by,
                    description=f'Invoice {number} deleted: payment #{p.pk} reversed',
                )
                reversed_total += p.amount
        invoice.delete()
        removed = ledger.delete_revenue_for_booking(booking.pk, [invoice_id], payment_ids, revenue_only=True)
        status = refresh_payment_status(booking)
        ledger.add_transaction(
            ledger.get_or_create_main_account(),
            Transaction.TYPE_DEBIT,
            Transaction.REFUNDS,
            reversed_total,
            reference=ledger.Reference(Transaction.REF_BOOKING, booking.pk),
            description=f'Invoice {number} deleted, {reversed_total} reversed',
            processed_by=processed_by,
            is_modification=True,
            original_amount=reversed_total,
            modification_reason=reason or 'Invoice deleted',
        )
    logger.info(
        'Invoice %s deleted: %s payments reversed (%s), %s revenue rows removed',
        number, len(payment_ids), reversed_total, removed,
    )
    return {
        'invoice_id': invoice_id,
        'invoice_number': number,
        'reversed_amount': reversed_total,
        'deleted_payments': len(payment_ids),
        'payment_status': status,
    }
