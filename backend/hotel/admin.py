from django.contrib import admin
from .models import RoomType, Room, Booking, BillItem, Invoice, InvoiceItem, Payment, SplitPayment


@admin.register(RoomType)
class RoomTypeAdmin(admin.ModelAdmin):
    list_display = ['name', 'base_price_per_night', 'capacity', 'total_rooms', 'is_active']


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ['number', 'room_type', 'status', 'floor', 'available_for_booking']
    list_filter = ['status', 'room_type']


class BillItemInline(admin.TabularInline):
    model = BillItem
    extra = 0
    readonly_fields = ['total_price', 'tax_rate', 'tax_amount', 'final_amount']


class SplitPaymentInline(admin.TabularInline):
    model = SplitPayment
    extra = 0


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    inlines = [BillItemInline, SplitPaymentInline]
    list_display = ['booking_reference', 'guest_name', 'room', 'check_in_date', 'check_out_date',
                    'status', 'payment_status', 'total_amount']
    list_filter = ['status', 'payment_status']
    search_fields = ['booking_reference', 'guest_name', 'guest_email']


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'booking', 'total_amount', 'status', 'issued_date']
    list_filter = ['status']
    inlines = [InvoiceItemInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['id', 'booking', 'invoice', 'amount', 'method', 'status', 'received_at']
    list_filter = ['method', 'status']
