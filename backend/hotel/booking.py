"""
Booking allocator: room selection, pricing, lifecycle updates and cascading delete.
Rooms are claimed with a conditional UPDATE ... WHERE status='available', so two
requests can never both reserve the same room.
"""
import logging
import secrets
import time
from datetime import date
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from core.exceptions import ConflictError, InvalidAmount, NoAvailability, NotFound, ValidationError
from core.notifications import notify
from finance import ledger, postings
from finance.models import LedgerPosting
from finance.tax import ZERO, calculate_taxes, load_tax_config, money
from .models import Booking, Room, RoomType

logger = logging.getLogger(__name__)

CANCELED_ALIASES = {'canceled': Booking.STATUS_CANCELLED}

# Room status while a booking in the given status holds the room
ROOM_STATUS_FOR_BOOKING = {
    Booking.STATUS_CONFIRMED: Room.STATUS_RESERVED,
    Booking.STATUS_CHECKED_IN: Room.STATUS_OCCUPIED,
    Booking.STATUS_CHECKED_OUT: Room.STATUS_CLEANING,
}

UPDATABLE_FIELDS = (
    'guest_name', 'guest_email', 'guest_phone', 'adults', 'children',
    'special_requests', 'promo_code', 'payment_method',
)


def generate_booking_reference() -> str:
    return f'BL-{int(time.time() * 1000)}{secrets.randbelow(1000):03d}'


def normalize_status(value: str) -> str:
    return CANCELED_ALIASES.get(value, value)


# ---------- Pricing ----------
def price_stay(room_type, nights, discount_amount=ZERO, config=None) -> dict:
    """
    Pricing fields for a stay. Taxes run twice: on the full base for original_amount,
    and on the discounted base for the amount actually charged.
    """
    config = config or load_tax_config()
    base = money(room_type.base_price_per_night * nights)
    discount = money(discount_amount)
    if discount < 0:
        raise InvalidAmount('Discount cannot be negative.')
    if discount > base:
        raise InvalidAmount(f'Discount {discount} exceeds the booking amount {base}.')
    full = calculate_taxes(base, config)
    charged = calculate_taxes(base - discount, config)
    return {
        'original_amount': full.total_amount,
        'discount_amount': discount,
        'base_amount': charged.base_amount,
        'gst_amount': charged.gst_amount,
        'service_tax_amount': charged.service_tax_amount,
        'other_tax_amount': charged.other_tax_amount,
        'total_tax_amount': charged.total_tax_amount,
        'total_amount': charged.total_amount,
    }


def derive_payment_status(amount_paid, total_amount) -> str:
    amount_paid = money(amount_paid)
    if amount_paid >= money(total_amount):
        return Booking.PAYMENT_PAID
    if amount_paid > 0:
        return Booking.PAYMENT_PARTIALLY_PAID
    return Booking.PAYMENT_PENDING


def apply_bill_items(booking):
    """
    Booking totals = stay (base_amount plus its GST/service/other taxes) + bill items.
    The stay fields themselves are left untouched.
    """
    extras = booking.bill_items.aggregate(
        tax=Sum('tax_amount', default=ZERO), total=Sum('final_amount', default=ZERO),
    )
    stay_tax = booking.gst_amount + booking.service_tax_amount + booking.other_tax_amount
    booking.total_tax_amount = money(stay_tax + extras['tax'])
    booking.total_amount = money(booking.base_amount + stay_tax + extras['total'])


def refresh_payment_status(booking) -> str:
    """Recompute payment_status from the booking's payments and persist it."""
    paid = booking.payments.aggregate(total=Sum('amount'))['total'] or ZERO
    status = derive_payment_status(paid, booking.total_amount)
    if status != booking.payment_status:
        Booking.objects.filter(pk=booking.pk).update(payment_status=status, updated_at=timezone.now())
        logger.info('Booking #%s payment status %s -> %s', booking.pk, booking.payment_status, status)
        booking.payment_status = status
    return status


# ---------- Rooms ----------
def claim_room(room_type, room_status=Room.STATUS_RESERVED) -> Room:
    """Lowest-numbered available room of the type, switched to room_status in one conditional update."""
    while True:
        room = (
            Room.objects.filter(room_type=room_type, status=Room.STATUS_AVAILABLE)
            .order_by('number')
            .first()
        )
        if room is None:
            raise NoAvailability(f'No rooms available for room type {room_type.name}.')
        claimed = Room.objects.filter(pk=room.pk, status=Room.STATUS_AVAILABLE).update(
            status=room_status, available_for_booking=False,
        )
        if claimed:
            room.status = room_status
            room.available_for_booking = False
            return room
        logger.info('Room %s taken concurrently, selecting again', room.number)


def reclaim_room(room, room_status) -> bool:
    """Re-reserve a specific room if it is still available."""
    claimed = Room.objects.filter(pk=room.pk, status=Room.STATUS_AVAILABLE).update(
        status=room_status, available_for_booking=False,
    )
    if claimed:
        room.status = room_status
        room.available_for_booking = False
    return bool(claimed)


def release_room(room):
    Room.objects.filter(pk=room.pk).update(status=Room.STATUS_AVAILABLE, available_for_booking=True)
    room.status = Room.STATUS_AVAILABLE
    room.available_for_booking = True


def set_room_status(room, room_status):
    Room.objects.filter(pk=room.pk).update(status=room_status, available_for_booking=False)
    room.status = room_status
    room.available_for_booking = False


def holds_room(status) -> bool:
    return status in (Booking.STATUS_CONFIRMED, Booking.STATUS_CHECKED_IN)


# ---------- Create ----------
def _validate_guest(guest_name, guest_email, check_in_date, check_out_date):
    missing = {}
    if not guest_name:
        missing['guest_name'] = ['This field is required.']
    if not guest_email:
        missing['guest_email'] = ['This field is required.']
    if not check_in_date:
        missing['check_in_date'] = ['This field is required.']
    if not check_out_date:
        missing['check_out_date'] = ['This field is required.']
    if missing:
        raise ValidationError(missing)
    if check_out_date <= check_in_date:
        raise ValidationError({'check_out_date': ['Check-out must be after check-in.']})


def _resolve_nights(check_in_date: date, check_out_date: date, nights=None) -> int:
    """Nights always follow the dates; an explicit value must agree with them."""
    span = (check_out_date - check_in_date).days
    if span < 1:
        raise ValidationError({'nights': ['A booking must cover at least one night.']})
    if nights is not None and nights != span:
        raise ValidationError({'nights': [f'{nights} nights does not match the stay dates ({span} nights).']})
    return span


def create_booking(*, room_type_id, check_in_date, check_out_date, guest_name, guest_email,
                   nights=None, adults=1, children=0, guest_phone='', discount_amount=ZERO,
                   promo_code='', special_requests='', payment_method=Booking.PAY_AT_HOTEL,
                   created_by=None) -> Booking:
    _validate_guest(guest_name, guest_email, check_in_date, check_out_date)
    nights = _resolve_nights(check_in_date, check_out_date, nights)
    room_type = RoomType.objects.filter(pk=room_type_id, is_active=True).first()
    if room_type is None:
        raise NotFound('Room type not found.')
    pricing = price_stay(room_type, nights, discount_amount)

    with transaction.atomic():
        room = claim_room(room_type)
        booking = Booking.objects.create(
            booking_reference=generate_booking_reference(),
            room_type=room_type,
            room=room,
            guest_name=guest_name,
            guest_email=guest_email,
            guest_phone=guest_phone or '',
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            nights=nights,
            adults=adults,
            children=children,
            promo_code=promo_code or '',
            special_requests=special_requests or '',
            status=Booking.STATUS_CONFIRMED,
            payment_status=Booking.PAYMENT_PENDING,
            payment_method=payment_method or Booking.PAY_AT_HOTEL,
            created_by=created_by,
            **pricing,
        )
    logger.info('Booking %s created: room %s, total %s', booking.booking_reference, room.number, booking.total_amount)
    notify(
        'booking', 'New booking',
        f'{booking.guest_name} booked room {room.number} ({booking.check_in_date} - {booking.check_out_date})',
        booking_id=booking.pk,
    )
    return booking


# ---------- Update ----------
def _reprice(booking, room_type, nights):
    """Recalculate pricing keeping the existing discount as a share of the undiscounted stay base."""
    undiscounted = booking.base_amount + booking.discount_amount
    ratio = booking.discount_amount / undiscounted if undiscounted > 0 else Decimal('0')
    base = money(room_type.base_price_per_night * nights)
    for field, value in price_stay(room_type, nights, money(base * ratio)).items():
        setattr(booking, field, value)
    apply_bill_items(booking)


def update_booking(booking_id, processed_by=None, **changes) -> Booking:
    """
    Apply status/date/room-type/guest changes. Pricing is recalculated when nights or
    room type change; room status follows the booking status.
    """
    with transaction.atomic():
        booking = Booking.objects.select_for_update().select_related('room', 'room_type').filter(pk=booking_id).first()
        if booking is None:
            raise NotFound('Booking not found.')
        old_status = booking.status
        new_status = normalize_status(changes.pop('status', None) or old_status)
        room_type_id = changes.pop('room_type_id', None)

        for field in UPDATABLE_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(booking, field, changes[field])

        check_in = changes.get('check_in_date') or booking.check_in_date
        check_out = changes.get('check_out_date') or booking.check_out_date
        if check_out <= check_in:
            raise ValidationError({'check_out_date': ['Check-out must be after check-in.']})
        booking.check_in_date, booking.check_out_date = check_in, check_out
        nights = _resolve_nights(check_in, check_out, changes.get('nights'))
        reprice = nights != booking.nights
        booking.nights = nights

        room_status = ROOM_STATUS_FOR_BOOKING.get(new_status, Room.STATUS_RESERVED)
        if room_type_id and room_type_id != booking.room_type_id:
            if old_status == Booking.STATUS_CANCELLED and new_status == Booking.STATUS_CANCELLED:
                raise ConflictError('Cannot change the room type of a cancelled booking.')
            room_type = RoomType.objects.filter(pk=room_type_id, is_active=True).first()
            if room_type is None:
                raise NotFound('Room type not found.')
            new_room = claim_room(room_type, room_status)
            if holds_room(old_status):
                release_room(booking.room)
            if new_status == Booking.STATUS_CANCELLED:
                release_room(new_room)
            booking.room_type, booking.room = room_type, new_room
            reprice = True
        elif new_status != old_status:
            if new_status == Booking.STATUS_CANCELLED:
                release_room(booking.room)
            elif old_status == Booking.STATUS_CANCELLED:
                if not reclaim_room(booking.room, room_status):
                    booking.room = claim_room(booking.room_type, room_status)
            else:
                set_room_status(booking.room, room_status)

        if reprice:
            _reprice(booking, booking.room_type, booking.nights)
        booking.status = new_status
        booking.save()
        if reprice:
            refresh_payment_status(booking)

    logger.info(
        'Booking %s updated by %s (status %s -> %s)',
        booking.booking_reference, getattr(processed_by, 'pk', None), old_status, new_status,
    )
    if new_status != old_status:
        notify(
            'booking', 'Booking updated',
            f'Booking {booking.booking_reference} is now {booking.get_status_display()}',
            booking_id=booking.pk,
        )
    return booking


# ---------- Delete ----------
def delete_booking(booking_id, processed_by=None) -> dict:
    """
    Free the room, delete the booking's ledger transactions, invoices and payments in one
    transaction, then reverse the collected amount on the main account after commit.
    """
    with transaction.atomic():
        booking = Booking.objects.select_for_update().select_related('room').filter(pk=booking_id).first()
        if booking is None:
            raise NotFound('Booking not found.')
        invoice_ids = list(booking.invoices.values_list('pk', flat=True))
        payments = list(booking.payments.values_list('pk', 'amount'))
        payment_ids = [pk for pk, _ in payments]
        paid_total = money(sum((amount for _, amount in payments), ZERO))

        if holds_room(booking.status):
            release_room(booking.room)
        deleted_txns = ledger.delete_revenue_for_booking(booking.pk, invoice_ids, payment_ids)
        reference = booking.booking_reference
        booking.delete()

        posting = None
        if paid_total > 0:
            posting = postings.enqueue(
                LedgerPosting.KIND_PAYMENT_REVERSED, booking_id, paid_total,
                requested_by=processed_by,
                description=f'Revenue reversed for deleted booking {reference}',
            )

    logger.info(
        'Booking %s deleted: %s invoices, %s payments (%s), %s ledger rows',
        reference, len(invoice_ids), len(payment_ids), paid_total, deleted_txns,
    )
    reversal_status = None
    if posting is not None:
        reversal_status = postings.process(posting.pk).status
    return {
        'booking_id': booking_id,
        'booking_reference': reference,
        'deleted_invoices': len(invoice_ids),
        'deleted_payments': len(payment_ids),
        'deleted_transactions': deleted_txns,
        'reversed_amount': paid_total,
        'reversal_status': reversal_status,
    }


def mark_overdue_bookings(today=None) -> int:
    """Pending/partially paid bookings past check-out become overdue."""
    today = today or timezone.localdate()
    count = (
        Booking.objects.filter(
            payment_status__in=[Booking.PAYMENT_PENDING, Booking.PAYMENT_PARTIALLY_PAID],
            check_out_date__lt=today,
        )
        .exclude(status=Booking.STATUS_CANCELLED)
        .update(payment_status=Booking.PAYMENT_OVERDUE, updated_at=timezone.now())
    )
    if count:
        logger.info('%s bookings marked overdue', count)
    return count
