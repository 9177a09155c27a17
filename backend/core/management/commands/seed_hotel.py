"""
Seed the hotel: permissions, roles, admin user, room types, rooms, tax settings, main account, expense types.
"""
from decimal import Decimal
from django.core.management.base import BaseCommand
from django.db import transaction
from django.contrib.auth import get_user_model

User = get_user_model()

PERMISSIONS = [
    ('create_booking', 'Create Booking', 'Create bookings'),
    ('view_bookings', 'View Bookings', 'View booking list'),
    ('manage_bookings', 'Manage Bookings', 'Update, cancel and delete bookings'),
    ('view_invoices', 'View Invoices', 'View invoices and payments'),
    ('manage_invoices', 'Manage Invoices', 'Generate, update and delete invoices'),
    ('post_payment', 'Post Payment', 'Record payments'),
    ('manage_payments', 'Manage Payments', 'Amend and delete payments'),
    ('manage_rooms', 'Manage Rooms', 'Manage rooms'),
    ('manage_room_types', 'Manage Room Types', 'Manage room types'),
    ('manage_taxes', 'Manage Taxes', 'Configure taxes (admin)'),
    ('view_accounts', 'View Accounts', 'View account balances and ledger reports'),
    ('manage_accounts', 'Manage Accounts', 'Create accounts, deposit, withdraw, transfer'),
    ('view_expenses', 'View Expenses', 'View and record expenses'),
    ('manage_expense_types', 'Manage Expense Types', 'Manage expense types'),
    ('view_inventory', 'View Inventory', 'View stock items, transactions and alerts'),
    ('manage_inventory', 'Manage Inventory', 'Manage categories and stock items'),
    ('record_stock_movement', 'Record Stock Movement', 'Record stock transactions'),
    ('view_reports', 'View Reports', 'View dashboard and reports'),
    ('manage_roles', 'Manage Roles', 'Create and edit roles and permissions'),
    ('manage_staff', 'Manage Staff', 'Manage staff and users'),
    ('view_audit_logs', 'View Audit Logs', 'View audit logs'),
]

ROLES = {
    'Receptionist': [
        'create_booking', 'view_bookings', 'manage_bookings', 'view_invoices', 'manage_invoices', 'post_payment',
    ],
    'Accountant': [
        'view_bookings', 'view_invoices', 'post_payment', 'manage_payments', 'view_accounts', 'manage_accounts',
        'view_expenses', 'manage_expense_types', 'view_reports',
    ],
    'Storekeeper': ['view_inventory', 'manage_inventory', 'record_stock_movement', 'view_expenses'],
}


class Command(BaseCommand):
    help = 'Seed the hotel with permissions, roles, admin, room types, rooms, tax settings and the main account'

    @transaction.atomic
    def handle(self, *args, **options):
        from core.models import Permission, Role
        from hotel.models import RoomType, Room
        from finance.ledger import get_or_create_main_account
        from finance.models import TaxSettings, ExpenseType
        from inventory.models import InventoryCategory

        for code, name, desc in PERMISSIONS:
            Permission.objects.get_or_create(code=code, defaults={'name': name, 'description': desc})
        self.stdout.write('Permissions created.')

        # Manager role (all permissions)
        manager_role, _ = Role.objects.get_or_create(name='Manager', defaults={'is_system': True})
        manager_role.permissions.set(Permission.objects.all())
        for name, codes in ROLES.items():
            role, _ = Role.objects.get_or_create(name=name, defaults={'is_system': True})
            role.permissions.set(Permission.objects.filter(code__in=codes))
        self.stdout.write('Roles created.')

        if not User.objects.filter(username='admin').exists():
            admin_user = User.objects.create_superuser('admin', 'admin@hotel.local', 'admin123')
            admin_user.first_name = 'Hotel'
            admin_user.last_name = 'Admin'
            admin_user.is_manager = True
            admin_user.role = manager_role
            admin_user.save()
            self.stdout.write('Admin user created: admin / admin123')
        else:
            self.stdout.write('Admin user already exists.')

        room_types = {}
        for name, price, capacity in [('Standard', '2500', 2), ('Deluxe', '4000', 2), ('Suite', '7500', 4)]:
            room_types[name], _ = RoomType.objects.get_or_create(
                name=name, defaults={'base_price_per_night': Decimal(price), 'capacity': capacity},
            )
        layout = [
            ('101', 'Standard', 1), ('102', 'Standard', 1), ('103', 'Standard', 1),
            ('201', 'Deluxe', 2), ('202', 'Deluxe', 2), ('301', 'Suite', 3),
        ]
        for number, type_name, floor in layout:
            Room.objects.get_or_create(number=number, defaults={'room_type': room_types[type_name], 'floor': floor})
        for room_type in room_types.values():
            room_type.total_rooms = room_type.rooms.count()
            room_type.save(update_fields=['total_rooms'])
        self.stdout.write('Room types and rooms created.')

        tax_settings = TaxSettings.load()
        if not tax_settings.tax_enabled:
            tax_settings.gst_percentage = Decimal('18')
            tax_settings.tax_enabled = True
            tax_settings.save()
        self.stdout.write('Tax settings configured (GST 18%).')

        get_or_create_main_account()
        for name in ['Utilities', 'Maintenance', 'Supplies', 'Salaries', 'Marketing']:
            ExpenseType.objects.get_or_create(name=name)
        for name in ['Linen', 'Toiletries', 'Food & Beverage', 'Cleaning Supplies']:
            InventoryCategory.objects.get_or_create(name=name)
        self.stdout.write('Main account, expense types and inventory categories created.')

        self.stdout.write(self.style.SUCCESS('Seed complete.'))
