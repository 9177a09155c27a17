"""
Hotel: RoomType, Room, Booking, BillItem, Invoice, InvoiceItem, Payment, SplitPayment.
Room status follows the booking lifecycle; Booking.payment_status is derived from its payments
and Booking.total_amount includes its bill items.
"""
from decimal import Decimal
from django.db import models
from django.db.models import Sum
from django.conf import settings


class RoomType(models.Model):
    """Bookable category with nightly price."""
    name = models.CharField(max_length=64, unique=True)
    base_price_per_night = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    currency = models.CharField(max_length=8, default=settings.CURRENCY)
    capacity = models.PositiveIntegerField(default=2)
    amenities = models.JSONField(default=list, blank=True)
    total_rooms = models.PositiveIntegerField(default=0)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'room_types'
        ordering = ['name']

    def __str__(self):
        return f'{self.name} ({self.base_price_per_night})'


class Room(models.Model):
    """Physical room of a room type. Reserved/occupied while a live booking holds it."""
    STATUS_AVAILABLE = 'available'
    STATUS_RESERVED = 'reserved'
    STATUS_OCCUPIED = 'occupied'
    STATUS_MAINTENANCE = 'maintenance'
    STATUS_CLEANING = 'cleaning'
    STATUS_CHOICES = [
        (STATUS_AVAILABLE, 'Available'),
        (STATUS_RESERVED, 'Reserved'),
        (STATUS_OCCUPIED, 'Occupied'),
        (STATUS_MAINTENANCE, 'Maintenance'),
        (STATUS_CLEANING, 'Cleaning'),
    ]
    room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name='rooms')
    number = models.CharField(max_length=16, unique=True)
    floor = models.CharField(max_length=8, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_AVAILABLE)
    available_for_booking = models.BooleanField(default=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'rooms'
        ordering = ['number']
        indexes = [models.Index(fields=['room_type', 'status'])]

    def __str__(self):
        return f'Room {self.number} ({self.get_status_display()})'


class Booking(models.Model):
    """Reservation of one room with its pricing breakdown."""
    STATUS_CONFIRMED = 'confirmed'
    STATUS_CHECKED_IN = 'checked_in'
    STATUS_CHECKED_OUT = 'checked_out'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_CHECKED_IN, 'Checked In'),
        (STATUS_CHECKED_OUT, 'Checked Out'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    PAYMENT_PENDING = 'pending'
    PAYMENT_PARTIALLY_PAID = 'partially_paid'
    PAYMENT_PAID = 'paid'
    PAYMENT_OVERDUE = 'overdue'
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_PARTIALLY_PAID, 'Partially Paid'),
        (PAYMENT_PAID, 'Paid'),
        (PAYMENT_OVERDUE, 'Overdue'),
    ]
    PAY_AT_HOTEL = 'pay_at_hotel'

    booking_reference = models.CharField(max_length=32, unique=True)
    room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name='bookings')
    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name='bookings')
    guest_name = models.CharField(max_length=128)
    guest_email = models.EmailField()
    guest_phone = models.CharField(max_length=32, blank=True)
    check_in_date = models.DateField()
    check_out_date = models.DateField()
    nights = models.PositiveIntegerField(default=1)
    adults = models.PositiveIntegerField(default=1)
    children = models.PositiveIntegerField(default=0)
    original_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    base_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    gst_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    service_tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    other_tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    promo_code = models.CharField(max_length=32, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_CONFIRMED)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)
    payment_method = models.CharField(max_length=32, default=PAY_AT_HOTEL)
    special_requests = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_bookings'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['payment_status']),
            models.Index(fields=['check_in_date', 'check_out_date']),
        ]

    def __str__(self):
        return f'{self.booking_reference} - {self.guest_name} - {self.room}'

    @property
    def amount_paid(self):
        return self.payments.aggregate(total=Sum('amount'))['total'] or Decimal('0')

    @property
    def balance_due(self):
        return self.total_amount - self.amount_paid


class Invoice(models.Model):
    """Billing document for a booking; a booking may be invoiced more than once."""
    STATUS_PENDING = 'pending'
    STATUS_PARTIALLY_PAID = 'partially_paid'
    STATUS_PAID = 'paid'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PARTIALLY_PAID, 'Partially Paid'),
        (STATUS_PAID, 'Paid'),
    ]
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='invoices')
    invoice_number = models.CharField(max_length=32, unique=True)
    qr_code = models.TextField(blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    issued_date = models.DateTimeField(auto_now_add=True)
    due_date = models.DateField(null=True, blank=True)
    paid_date = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_invoices'
    )

    class Meta:
        db_table = 'invoices'
        ordering = ['-issued_date']
        indexes = [models.Index(fields=['booking']), models.Index(fields=['status'])]

    def __str__(self):
        return f'{self.invoice_number} ({self.total_amount})'


class InvoiceItem(models.Model):
    """Line on an invoice: the room stay or an extra charge. Tax applied on the discounted amount."""
    TYPE_ROOM = 'room_stay'
    TYPE_EXTRA = 'extra_charge'
    TYPE_CHOICES = [(TYPE_ROOM, 'Room Stay'), (TYPE_EXTRA, 'Extra Charge')]

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    item_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_EXTRA)
    description = models.CharField(max_length=256)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('1'))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    final_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))

    class Meta:
        db_table = 'invoice_items'
        ordering = ['id']

    def __str__(self):
        return f'{self.description} x{self.quantity}'


class Payment(models.Model):
    """Money received against a booking, optionally tied to an invoice."""
    METHOD_CASH = 'cash'
    METHOD_CARD = 'card'
    METHOD_UPI = 'upi'
    METHOD_BANK = 'bank_transfer'
    METHOD_ONLINE = 'online_gateway'
    METHOD_CHEQUE = 'cheque'
    METHOD_WALLET = 'wallet'
    METHOD_CHOICES = [
        (METHOD_CASH, 'Cash'),
        (METHOD_CARD, 'Card'),
        (METHOD_UPI, 'UPI'),
        (METHOD_BANK, 'Bank Transfer'),
        (METHOD_ONLINE, 'Online Gateway'),
        (METHOD_CHEQUE, 'Cheque'),
        (METHOD_WALLET, 'Wallet'),
    ]
    STATUS_COMPLETED = 'completed'
    STATUS_PENDING = 'pending'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [(STATUS_COMPLETED, 'Completed'), (STATUS_PENDING, 'Pending'), (STATUS_FAILED, 'Failed')]

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='payments')
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, null=True, blank=True, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    method = models.CharField(max_length=32, choices=METHOD_CHOICES)
    reference = models.CharField(max_length=128, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_COMPLETED)
    idempotency_key = models.CharField(max_length=64, unique=True, null=True, blank=True)
    notes = models.TextField(blank=True)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='received_payments'
    )
    received_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payments'
        ordering = ['received_at']
        indexes = [models.Index(fields=['booking', 'amount', 'method'])]

    def __str__(self):
        return f'Payment #{self.id} {self.amount} ({self.method})'


class BillItem(models.Model):
    """Service or product added to a booking's running bill; counted in Booking.total_amount."""
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='bill_items')
    item_name = models.CharField(max_length=128)
    description = models.CharField(max_length=256, blank=True)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('1'))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    gst_applicable = models.BooleanField(default=False)
    gst_percentage = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    final_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    added_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='added_bill_items'
    )
    added_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bill_items'
        ordering = ['added_at', 'id']

    def __str__(self):
        return f'{self.item_name} x{self.quantity} ({self.final_amount})'


class SplitPayment(models.Model):
    """Planned split of a booking's total across payment methods."""
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='split_payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    method = models.CharField(max_length=32, choices=Payment.METHOD_CHOICES)
    description = models.CharField(max_length=256, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'split_payments'
        ordering = ['id']

    def __str__(self):
        return f'{self.booking_id}: {self.amount} ({self.method})'
