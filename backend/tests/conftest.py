"""Shared fixtures: users, API client, tax settings, a room type with rooms, the main account."""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from core.models import Permission, Role, User
from finance import ledger
from finance.models import TaxSettings
from hotel.booking import create_booking
from hotel.models import Room, RoomType


@pytest.fixture
def admin_user(db):
    return User.objects.create_superuser('admin', 'admin@hotel.test', 'admin-pass', is_manager=True)


@pytest.fixture
def staff_user(db):
    role = Role.objects.create(name='Front Desk')
    for code in ('create_booking', 'view_bookings', 'view_expenses'):
        role.permissions.add(Permission.objects.create(code=code, name=code))
    return User.objects.create_user('clerk', 'clerk@hotel.test', 'clerk-pass', role=role)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_client(api_client, admin_user):
    api_client.force_authenticate(user=admin_user)
    return api_client


@pytest.fixture
def gst_18(db):
    return TaxSettings.objects.create(pk=1, gst_percentage=Decimal('18'), tax_enabled=True)


@pytest.fixture
def room_type(db):
    rt = RoomType.objects.create(name='Deluxe', base_price_per_night=Decimal('1000'), total_rooms=3)
    for number in ('103', '101', '102'):
        Room.objects.create(room_type=rt, number=number, floor=1)
    return rt


@pytest.fixture
def single_room_type(db):
    rt = RoomType.objects.create(name='Suite', base_price_per_night=Decimal('5000'), total_rooms=1)
    Room.objects.create(room_type=rt, number='501', floor=5)
    return rt


@pytest.fixture
def main_account(db):
    return ledger.get_or_create_main_account()


@pytest.fixture
def stay_dates():
    check_in = date.today() + timedelta(days=7)
    return check_in, check_in + timedelta(days=2)


@pytest.fixture
def make_booking(room_type, stay_dates, gst_18):
    def _make(**overrides):
        check_in, check_out = stay_dates
        fields = {
            'room_type_id': room_type.pk,
            'check_in_date': check_in,
            'check_out_date': check_out,
            'guest_name': 'Asha Rao',
            'guest_email': 'asha@example.com',
        }
        fields.update(overrides)
        return create_booking(**fields)
    return _make
