from decimal import Decimal

import pytest

from core.models import AuditLog
from finance import ledger
from finance.models import Expense
from hotel.models import Booking, Room


@pytest.fixture
def booking_payload(room_type, stay_dates, gst_18):
    check_in, check_out = stay_dates
    return {
        'room_type': room_type.pk,
        'check_in_date': check_in.isoformat(),
        'check_out_date': check_out.isoformat(),
        'guest_name': 'Ravi Menon',
        'guest_email': 'ravi@example.com',
    }


@pytest.mark.django_db
class TestErrorBodies:
    def test_unauthenticated_is_401(self, api_client):
        resp = api_client.get('/api/bookings/')
        assert resp.status_code == 401
        assert resp.json() == {'error': 'Unauthorized'}

    def test_validation_failure(self, admin_client, booking_payload):
        del booking_payload['guest_email']
        resp = admin_client.post('/api/bookings/', booking_payload, format='json')
        assert resp.status_code == 400
        body = resp.json()
        assert body['error'] == 'Validation failed'
        assert 'guest_email' in body['details']

    def test_not_found(self, admin_client):
        resp = admin_client.get('/api/bookings/404/')
        assert resp.status_code == 404
        assert 'error' in resp.json()

    def test_missing_permission_is_403(self, api_client, staff_user, booking_payload):
        api_client.force_authenticate(user=staff_user)
        resp = api_client.get('/api/accounts/')
        assert resp.status_code == 403
        assert 'error' in resp.json()


@pytest.mark.django_db
class TestBookingApi:
    def test_create_list_delete(self, admin_client, booking_payload, main_account):
        resp = admin_client.post('/api/bookings/', booking_payload, format='json')
        assert resp.status_code == 201
        created = resp.json()
        assert Decimal(created['total_amount']) == Decimal('2360.00')
        assert created['room_number'] == '101'

        resp = admin_client.get('/api/bookings/?status=confirmed&include=invoices')
        assert resp.status_code == 200
        assert resp.json()['count'] == 1
        assert resp.json()['results'][0]['invoices'] == []

        resp = admin_client.delete(f"/api/bookings/{created['id']}/")
        assert resp.status_code == 200
        assert resp.json()['booking_reference'] == created['booking_reference']
        assert AuditLog.objects.filter(action='delete_booking').exists()
        assert admin_client.delete(f"/api/bookings/{created['id']}/").status_code == 404

    def test_no_availability_is_400(self, admin_client, booking_payload):
        Room.objects.update(status=Room.STATUS_MAINTENANCE)
        resp = admin_client.post('/api/bookings/', booking_payload, format='json')
        assert resp.status_code == 400
        assert resp.json()['error'].startswith('No rooms available')

    def test_patch_cancel(self, admin_client, make_booking):
        booking = make_booking()
        resp = admin_client.patch(f'/api/bookings/{booking.pk}/', {'status': 'canceled'}, format='json')
        assert resp.status_code == 200
        assert resp.json()['status'] == Booking.STATUS_CANCELLED

    def test_available_rooms(self, admin_client, make_booking, room_type):
        make_booking()
        resp = admin_client.get(f'/api/rooms/available/?room_type={room_type.pk}')
        assert [r['number'] for r in resp.json()] == ['102', '103']

    def test_bill_items_and_include(self, admin_client, make_booking):
        booking = make_booking()
        url = f'/api/bookings/{booking.pk}/bill-items/'
        resp = admin_client.post(url, {'item_name': 'Laundry', 'quantity': '2', 'unit_price': '150'}, format='json')
        assert resp.status_code == 201
        assert resp.json()['bill_item']['final_amount'] == '354.00'
        assert resp.json()['booking']['total_amount'] == '2714.00'
        item_id = resp.json()['bill_item']['id']
        assert AuditLog.objects.filter(action='add_bill_item').exists()

        resp = admin_client.get('/api/bookings/?include=billItems')
        row = resp.json()['results'][0]
        assert [i['item_name'] for i in row['bill_items']] == ['Laundry']
        assert row['invoices'] is None
        assert admin_client.get('/api/bookings/').json()['results'][0]['bill_items'] is None

        resp = admin_client.patch(f'{url}{item_id}/', {'quantity': '1'}, format='json')
        assert resp.status_code == 200
        assert resp.json()['booking']['total_amount'] == '2537.00'

        resp = admin_client.delete(f'{url}{item_id}/')
        assert resp.status_code == 200
        assert admin_client.get(url).json() == []
        assert admin_client.get('/api/bookings/9999/bill-items/').status_code == 404

    def test_split_payment_mismatch_is_400(self, admin_client, make_booking):
        booking = make_booking()
        url = f'/api/bookings/{booking.pk}/split-payments/'
        resp = admin_client.put(url, {'splits': [{'amount': '100', 'method': 'cash'}]}, format='json')
        assert resp.status_code == 400
        assert 'does not match' in resp.json()['error']
        resp = admin_client.put(url, {'splits': [
            {'amount': '2000', 'method': 'cash'}, {'amount': '360', 'method': 'card'},
        ]}, format='json')
        assert resp.status_code == 200
        assert len(admin_client.get(url).json()) == 2


@pytest.mark.django_db
class TestBillingApi:
    def test_invoice_and_payment_summary(self, admin_client, make_booking, main_account):
        booking = make_booking()
        resp = admin_client.post('/api/invoices/', {
            'booking': booking.pk,
            'base_amount': '2000',
            'status': 'paid',
            'payment_info': {'method': 'card', 'amount': '2360'},
        }, format='json')
        assert resp.status_code == 201
        assert resp.json()['payment_created'] is True
        assert resp.json()['revenue_posting'] == 'done'

        resp = admin_client.get(f'/api/payments/?booking={booking.pk}')
        summary = resp.json()
        assert Decimal(str(summary['total_paid'])) == Decimal('2360')
        assert summary['payment_status'] == Booking.PAYMENT_PAID
        assert len(summary['payments']) == 1

    def test_duplicate_payment_returns_200(self, admin_client, make_booking, main_account):
        booking = make_booking()
        payload = {'booking': booking.pk, 'amount': '500', 'method': 'cash'}
        assert admin_client.post('/api/payments/', payload, format='json').status_code == 201
        resp = admin_client.post('/api/payments/', payload, format='json')
        assert resp.status_code == 200
        assert resp.json()['created'] is False

    def test_payment_amend_and_delete(self, admin_client, make_booking, main_account):
        booking = make_booking()
        created = admin_client.post(
            '/api/payments/', {'booking': booking.pk, 'amount': '500', 'method': 'cash'}, format='json',
        ).json()
        pid = created['payment']['id']
        resp = admin_client.put(f'/api/payments/{pid}/', {'amount': '600', 'reason': 'Correction'}, format='json')
        assert resp.status_code == 200
        resp = admin_client.delete(f'/api/payments/{pid}/?reason=Refund')
        assert resp.status_code == 200
        main_account.refresh_from_db()
        assert main_account.balance == Decimal('0.00')


@pytest.mark.django_db
class TestAccountsApi:
    def test_balances_and_deposit(self, admin_client, main_account):
        resp = admin_client.post(
            '/api/accounts/', {'action': 'deposit', 'account': main_account.pk, 'amount': '150'}, format='json',
        )
        assert resp.status_code == 201
        resp = admin_client.get('/api/accounts/?action=balances')
        assert resp.status_code == 200
        assert any(Decimal(a['balance']) == Decimal('150') for a in resp.json()['accounts'])

    def test_unknown_period(self, admin_client, main_account):
        resp = admin_client.get('/api/accounts/?action=summary&period=decade')
        assert resp.status_code == 400

    def test_withdraw_beyond_balance(self, admin_client, main_account):
        resp = admin_client.post(
            '/api/accounts/', {'action': 'withdraw', 'account': main_account.pk, 'amount': '1'}, format='json',
        )
        assert resp.status_code == 400
        assert resp.json()['error'].startswith('Insufficient balance')


@pytest.mark.django_db
class TestExpenseApi:
    def test_staff_sees_own_and_manager_approves(self, api_client, staff_user, admin_user, main_account):
        ledger.manual_deposit(ledger.get_or_create_user_account(staff_user), Decimal('100'))
        api_client.force_authenticate(user=staff_user)
        resp = api_client.post('/api/expenses/', {'title': 'Courier', 'amount': '30'}, format='json')
        assert resp.status_code == 201
        expense_id = resp.json()['id']
        assert resp.json()['status'] == Expense.STATUS_PENDING
        assert api_client.get('/api/expenses/').json()['count'] == 1
        assert api_client.post(f'/api/expenses/{expense_id}/approve/').status_code == 403

        api_client.force_authenticate(user=admin_user)
        resp = api_client.post(f'/api/expenses/{expense_id}/approve/')
        assert resp.status_code == 200
        assert resp.json()['status'] == Expense.STATUS_APPROVED
        assert api_client.post(f'/api/expenses/{expense_id}/reject/').status_code == 400

    def test_duplicate_expense_type(self, admin_client):
        assert admin_client.post('/api/expense-types/', {'name': 'Utilities'}, format='json').status_code == 201
        resp = admin_client.post('/api/expense-types/', {'name': 'utilities'}, format='json')
        assert resp.status_code == 400
        assert 'already exists' in resp.json()['error']
