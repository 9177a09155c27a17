from decimal import Decimal

from rest_framework import serializers

from .models import RoomType, Room, Booking, BillItem, Invoice, InvoiceItem, Payment, SplitPayment

BOOKING_STATUS_INPUT = [choice for choice, _ in Booking.STATUS_CHOICES] + ['canceled']


class RoomTypeSerializer(serializers.ModelSerializer):
    available_rooms = serializers.SerializerMethodField()

    class Meta:
        model = RoomType
        fields = [
            'id', 'name', 'base_price_per_night', 'currency', 'capacity', 'amenities', 'total_rooms',
            'description', 'is_active', 'available_rooms',
        ]
        extra_kwargs = {'base_price_per_night': {'min_value': Decimal('0')}}

    def get_available_rooms(self, obj):
        return obj.rooms.filter(status=Room.STATUS_AVAILABLE).count()


class RoomSerializer(serializers.ModelSerializer):
    room_type_name = serializers.CharField(source='room_type.name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Room
        fields = [
            'id', 'number', 'room_type', 'room_type_name', 'floor', 'status', 'status_display',
            'available_for_booking', 'notes',
        ]


class InvoiceItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceItem
        fields = [
            'id', 'item_type', 'description', 'quantity', 'unit_price', 'discount',
            'tax_rate', 'tax_amount', 'final_amount',
        ]


class PaymentSerializer(serializers.ModelSerializer):
    received_by_name = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            'id', 'booking', 'invoice', 'amount', 'method', 'reference', 'status', 'idempotency_key',
            'notes', 'received_by', 'received_by_name', 'received_at', 'updated_at',
        ]

    def get_received_by_name(self, obj):
        return obj.received_by.get_full_name() if obj.received_by else ''


class InvoiceSerializer(serializers.ModelSerializer):
    items = InvoiceItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    booking_reference = serializers.CharField(source='booking.booking_reference', read_only=True)
    guest_name = serializers.CharField(source='booking.guest_name', read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'booking', 'booking_reference', 'guest_name', 'invoice_number', 'qr_code',
            'subtotal', 'discount_amount', 'tax_amount', 'total_amount', 'status',
            'issued_date', 'due_date', 'paid_date', 'notes', 'items', 'payments',
        ]


class BillItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillItem
        fields = [
            'id', 'booking', 'item_name', 'description', 'quantity', 'unit_price', 'total_price',
            'discount', 'gst_applicable', 'gst_percentage', 'tax_rate', 'tax_amount', 'final_amount',
            'added_by', 'added_at', 'updated_at',
        ]


class SplitPaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = SplitPayment
        fields = ['id', 'booking', 'amount', 'method', 'description', 'created_at']


class BookingSerializer(serializers.ModelSerializer):
    room_number = serializers.CharField(source='room.number', read_only=True)
    room_type_name = serializers.CharField(source='room_type.name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    invoices = serializers.SerializerMethodField()
    bill_items = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            'id', 'booking_reference', 'room_type', 'room_type_name', 'room', 'room_number',
            'guest_name', 'guest_email', 'guest_phone', 'check_in_date', 'check_out_date',
            'nights', 'adults', 'children',
            'original_amount', 'discount_amount', 'base_amount', 'gst_amount', 'service_tax_amount',
            'other_tax_amount', 'total_tax_amount', 'total_amount',
            'promo_code', 'status', 'status_display', 'payment_status', 'payment_method',
            'special_requests', 'bill_items', 'invoices', 'created_at', 'updated_at',
        ]

    def get_invoices(self, obj):
        """Nested only when the view asks for it (?include=invoices)."""
        if not self.context.get('include_invoices'):
            return None
        return InvoiceSerializer(obj.invoices.all(), many=True).data

    def get_bill_items(self, obj):
        if not self.context.get('include_bill_items'):
            return None
        return BillItemSerializer(obj.bill_items.all(), many=True).data


class BookingCreateSerializer(serializers.Serializer):
    room_type = serializers.IntegerField()
    check_in_date = serializers.DateField()
    check_out_date = serializers.DateField()
    nights = serializers.IntegerField(min_value=1, required=False)
    adults = serializers.IntegerField(min_value=1, default=1)
    children = serializers.IntegerField(min_value=0, default=0)
    guest_name = serializers.CharField(max_length=128)
    guest_email = serializers.EmailField()
    guest_phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default='')
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    promo_code = serializers.CharField(max_length=32, required=False, allow_blank=True, default='')
    special_requests = serializers.CharField(required=False, allow_blank=True, default='')
    payment_method = serializers.CharField(max_length=32, required=False, default=Booking.PAY_AT_HOTEL)

    def validate(self, attrs):
        if attrs['check_out_date'] <= attrs['check_in_date']:
            raise serializers.ValidationError({'check_out_date': 'Check-out must be after check-in.'})
        return attrs


class BookingUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=BOOKING_STATUS_INPUT, required=False)
    room_type = serializers.IntegerField(required=False)
    check_in_date = serializers.DateField(required=False)
    check_out_date = serializers.DateField(required=False)
    nights = serializers.IntegerField(min_value=1, required=False)
    adults = serializers.IntegerField(min_value=1, required=False)
    children = serializers.IntegerField(min_value=0, required=False)
    guest_name = serializers.CharField(max_length=128, required=False)
    guest_email = serializers.EmailField(required=False)
    guest_phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    promo_code = serializers.CharField(max_length=32, required=False, allow_blank=True)
    special_requests = serializers.CharField(required=False, allow_blank=True)
    payment_method = serializers.CharField(max_length=32, required=False)


class ExtraChargeSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=256)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'), default=Decimal('1'))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))


class PaymentInfoSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False)
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES)
    reference = serializers.CharField(max_length=128, required=False, allow_blank=True, default='')
    idempotency_key = serializers.CharField(max_length=64, required=False, allow_blank=True)


class InvoiceCreateSerializer(serializers.Serializer):
    booking = serializers.IntegerField()
    base_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    invoice_items = ExtraChargeSerializer(many=True, required=False, default=list)
    status = serializers.ChoiceField(choices=Invoice.STATUS_CHOICES, default=Invoice.STATUS_PENDING)
    payment_info = PaymentInfoSerializer(required=False, allow_null=True)
    due_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class InvoiceStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Invoice.STATUS_CHOICES)


class PaymentCreateSerializer(serializers.Serializer):
    booking = serializers.IntegerField()
    invoice = serializers.IntegerField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES)
    reference = serializers.CharField(max_length=128, required=False, allow_blank=True, default='')
    idempotency_key = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PaymentUpdateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES, required=False)
    reason = serializers.CharField(max_length=512, required=False, allow_blank=True, default='')


class BillItemCreateSerializer(serializers.Serializer):
    item_name = serializers.CharField(max_length=128)
    description = serializers.CharField(max_length=256, required=False, allow_blank=True, default='')
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'), default=Decimal('1'))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    gst_applicable = serializers.BooleanField(default=False)
    gst_percentage = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=Decimal('0'), required=False, allow_null=True,
    )


class BillItemUpdateSerializer(serializers.Serializer):
    item_name = serializers.CharField(max_length=128, required=False)
    description = serializers.CharField(max_length=256, required=False, allow_blank=True)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'), required=False)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    gst_applicable = serializers.BooleanField(required=False)
    gst_percentage = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=Decimal('0'), required=False, allow_null=True,
    )


class SplitPartSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES)
    description = serializers.CharField(max_length=256, required=False, allow_blank=True, default='')


class SplitPaymentSetupSerializer(serializers.Serializer):
    splits = SplitPartSerializer(many=True, allow_empty=False)
