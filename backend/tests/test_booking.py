from datetime import date, timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.db.models.query import QuerySet

from core.exceptions import InvalidAmount, NoAvailability, NotFound, ValidationError
from finance.models import BankAccount, LedgerPosting, Transaction
from hotel import billing
from hotel.booking import (
    create_booking, delete_booking, derive_payment_status, mark_overdue_bookings, update_booking,
)
from hotel.models import Booking, Payment, Room, RoomType

REAL_FIRST = QuerySet.first


def _steal_rooms(limit=None):
    """QuerySet.first replacement: every Room it returns is reserved by someone else before the caller claims it."""
    stolen = []

    def racing_first(qs):
        obj = REAL_FIRST(qs)
        if isinstance(obj, Room) and (limit is None or len(stolen) < limit):
            stolen.append(obj.number)
            Room.objects.filter(pk=obj.pk).update(status=Room.STATUS_RESERVED, available_for_booking=False)
        return obj
    return stolen, racing_first


@pytest.mark.django_db
class TestCreateBooking:
    def test_two_nights_with_gst_picks_lowest_room(self, make_booking):
        booking = make_booking()
        assert booking.base_amount == Decimal('2000.00')
        assert booking.gst_amount == Decimal('360.00')
        assert booking.total_amount == Decimal('2360.00')
        assert booking.nights == 2
        assert booking.room.number == '101'
        assert booking.status == Booking.STATUS_CONFIRMED
        assert booking.payment_status == Booking.PAYMENT_PENDING
        assert booking.payment_method == Booking.PAY_AT_HOTEL
        room = Room.objects.get(pk=booking.room_id)
        assert room.status == Room.STATUS_RESERVED
        assert room.available_for_booking is False

    def test_discount_taxed_on_discounted_base(self, make_booking):
        booking = make_booking(discount_amount=Decimal('500'))
        assert booking.original_amount == Decimal('2360.00')
        assert booking.base_amount == Decimal('1500.00')
        assert booking.gst_amount == Decimal('270.00')
        assert booking.total_amount == Decimal('1770.00')

    def test_discount_above_base_rejected(self, make_booking):
        with pytest.raises(InvalidAmount):
            make_booking(discount_amount=Decimal('2500'))
        assert not Booking.objects.exists()

    def test_sequential_requests_never_share_a_room(self, single_room_type, stay_dates, gst_18):
        check_in, check_out = stay_dates
        fields = dict(
            room_type_id=single_room_type.pk, check_in_date=check_in, check_out_date=check_out,
            guest_name='Guest', guest_email='g@example.com',
        )
        create_booking(**fields)
        for _ in range(3):
            with pytest.raises(NoAvailability):
                create_booking(**fields)
        assert Booking.objects.count() == 1

    def test_room_taken_between_select_and_claim_moves_to_next_room(self, make_booking):
        stolen, racing_first = _steal_rooms(limit=1)
        with mock.patch.object(QuerySet, 'first', autospec=True, side_effect=racing_first):
            booking = make_booking()
        assert stolen == ['101']
        assert booking.room.number == '102'
        assert Room.objects.get(number='102').status == Room.STATUS_RESERVED
        assert Booking.objects.filter(room__number='101').count() == 0

    def test_last_room_taken_concurrently_is_no_availability(self, single_room_type, stay_dates, gst_18):
        check_in, check_out = stay_dates
        stolen, racing_first = _steal_rooms()
        with mock.patch.object(QuerySet, 'first', autospec=True, side_effect=racing_first):
            with pytest.raises(NoAvailability):
                create_booking(
                    room_type_id=single_room_type.pk, check_in_date=check_in, check_out_date=check_out,
                    guest_name='Guest', guest_email='g@example.com',
                )
        assert stolen == ['501']
        assert not Booking.objects.exists()

    def test_nights_must_match_dates(self, make_booking):
        with pytest.raises(ValidationError):
            make_booking(nights=3)
        assert make_booking(nights=2).nights == 2

    def test_missing_guest_name(self, make_booking):
        with pytest.raises(ValidationError):
            make_booking(guest_name='')

    def test_unknown_room_type(self, make_booking):
        with pytest.raises(NotFound):
            make_booking(room_type_id=9999)

    def test_notification_created(self, make_booking):
        from core.models import Notification
        booking = make_booking()
        assert Notification.objects.filter(kind='booking', data__booking_id=booking.pk).exists()


@pytest.mark.django_db
class TestUpdateBooking:
    def test_cancel_frees_room(self, make_booking):
        booking = make_booking()
        update_booking(booking.pk, status='cancelled')
        room = Room.objects.get(pk=booking.room_id)
        assert room.status == Room.STATUS_AVAILABLE
        assert room.available_for_booking is True

    def test_canceled_spelling_accepted(self, make_booking):
        booking = make_booking()
        updated = update_booking(booking.pk, status='canceled')
        assert updated.status == Booking.STATUS_CANCELLED

    def test_check_in_marks_room_occupied(self, make_booking):
        booking = make_booking()
        update_booking(booking.pk, status='checked_in')
        assert Room.objects.get(pk=booking.room_id).status == Room.STATUS_OCCUPIED

    def test_extending_stay_reprices(self, make_booking, stay_dates):
        booking = make_booking()
        check_in, _ = stay_dates
        updated = update_booking(booking.pk, check_out_date=check_in + timedelta(days=3))
        assert updated.nights == 3
        assert updated.total_amount == Decimal('3540.00')

    def test_room_type_change_at_same_price_keeps_discount(self, make_booking):
        premier = RoomType.objects.create(name='Premier', base_price_per_night=Decimal('1000'), total_rooms=1)
        Room.objects.create(room_type=premier, number='201', floor=2)
        booking = make_booking(discount_amount=Decimal('200'))
        assert booking.total_amount == Decimal('2124.00')

        updated = update_booking(booking.pk, room_type_id=premier.pk)

        assert updated.room.number == '201'
        assert updated.discount_amount == Decimal('200.00')
        assert updated.base_amount == Decimal('1800.00')
        assert updated.total_amount == Decimal('2124.00')

    def test_extending_discounted_stay_scales_discount(self, make_booking, stay_dates):
        booking = make_booking(discount_amount=Decimal('200'))
        check_in, _ = stay_dates
        updated = update_booking(booking.pk, check_out_date=check_in + timedelta(days=3))
        assert updated.discount_amount == Decimal('300.00')
        assert updated.base_amount == Decimal('2700.00')
        assert updated.gst_amount == Decimal('486.00')
        assert updated.total_amount == Decimal('3186.00')

    def test_nights_disagreeing_with_dates_rejected(self, make_booking, stay_dates):
        booking = make_booking()
        check_in, _ = stay_dates
        with pytest.raises(ValidationError):
            update_booking(booking.pk, check_out_date=check_in + timedelta(days=3), nights=5)
        with pytest.raises(ValidationError):
            update_booking(booking.pk, nights=4)
        booking.refresh_from_db()
        assert booking.nights == 2
        assert booking.total_amount == Decimal('2360.00')

    def test_reinstating_cancelled_booking_reclaims_room(self, make_booking):
        booking = make_booking()
        update_booking(booking.pk, status='cancelled')
        updated = update_booking(booking.pk, status='confirmed')
        assert updated.room_id == booking.room_id
        assert Room.objects.get(pk=booking.room_id).status == Room.STATUS_RESERVED


@pytest.mark.django_db
class TestDeleteBooking:
    def test_cascade_and_reversal(self, make_booking, main_account, admin_user):
        booking = make_booking()
        billing.record_payment(booking_id=booking.pk, amount=Decimal('1000'), method='cash', received_by=admin_user)
        billing.record_payment(booking_id=booking.pk, amount=Decimal('500'), method='card', received_by=admin_user)
        main_account.refresh_from_db()
        before = main_account.balance
        assert before == Decimal('1500.00')

        result = delete_booking(booking.pk, processed_by=admin_user)

        assert result['reversed_amount'] == Decimal('1500.00')
        assert result['deleted_payments'] == 2
        assert result['reversal_status'] == LedgerPosting.STATUS_DONE
        assert not Booking.objects.filter(pk=booking.pk).exists()
        assert not Payment.objects.filter(booking_id=booking.pk).exists()
        assert not Transaction.objects.filter(reference_type=Transaction.REF_PAYMENT).exists()
        main_account.refresh_from_db()
        assert main_account.balance == before - Decimal('1500.00')
        assert Room.objects.get(pk=booking.room_id).status == Room.STATUS_AVAILABLE

    def test_repeat_delete_does_not_reverse_twice(self, make_booking, main_account):
        booking = make_booking()
        billing.record_payment(booking_id=booking.pk, amount=Decimal('800'), method='cash')
        delete_booking(booking.pk)
        main_account.refresh_from_db()
        after_first = main_account.balance
        with pytest.raises(NotFound):
            delete_booking(booking.pk)
        main_account.refresh_from_db()
        assert main_account.balance == after_first
        assert LedgerPosting.objects.filter(kind=LedgerPosting.KIND_PAYMENT_REVERSED).count() == 1

    def test_unpaid_booking_has_no_reversal(self, make_booking, main_account):
        booking = make_booking()
        result = delete_booking(booking.pk)
        assert result['reversed_amount'] == Decimal('0.00')
        assert result['reversal_status'] is None
        assert BankAccount.objects.get(pk=main_account.pk).balance == Decimal('0.00')


class TestPaymentStatusRule:
    @pytest.mark.parametrize('paid, total, expected', [
        ('0', '2360', Booking.PAYMENT_PENDING),
        ('100', '2360', Booking.PAYMENT_PARTIALLY_PAID),
        ('2360', '2360', Booking.PAYMENT_PAID),
        ('3000', '2360', Booking.PAYMENT_PAID),
    ])
    def test_derivation(self, paid, total, expected):
        assert derive_payment_status(Decimal(paid), Decimal(total)) == expected


@pytest.mark.django_db
class TestOverdue:
    def test_unpaid_past_checkout_marked_overdue(self, make_booking):
        past = date.today() - timedelta(days=5)
        booking = make_booking(check_in_date=past, check_out_date=past + timedelta(days=2))
        assert mark_overdue_bookings() == 1
        booking.refresh_from_db()
        assert booking.payment_status == Booking.PAYMENT_OVERDUE
