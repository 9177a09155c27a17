"""
Hotel: RoomType, Room, Booking (with its bill items and split payments), Invoice, Payment.
Booking and billing rules live in booking.py / billing.py; views validate input and shape responses.
"""
from rest_framework import generics, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import ConflictError, NotFound
from core.middleware import audit
from core.permissions import HasPermission, HasPermissionOrReadOnly
from . import billing
from .booking import create_booking, delete_booking, normalize_status, update_booking
from .models import RoomType, Room, Booking, BillItem, Invoice, Payment
from .serializers import (
    RoomTypeSerializer, RoomSerializer, BookingSerializer, BookingCreateSerializer,
    BookingUpdateSerializer, InvoiceSerializer, InvoiceCreateSerializer, InvoiceStatusSerializer,
    PaymentSerializer, PaymentCreateSerializer, PaymentUpdateSerializer, BillItemSerializer,
    BillItemCreateSerializer, BillItemUpdateSerializer, SplitPaymentSerializer, SplitPaymentSetupSerializer,
)


# ---------- Room Types ----------
class RoomTypeListCreate(generics.ListCreateAPIView):
    queryset = RoomType.objects.filter(is_active=True)
    serializer_class = RoomTypeSerializer
    permission_classes = [IsAuthenticated, HasPermissionOrReadOnly]
    permission_code = 'manage_room_types'


class RoomTypeDetail(generics.RetrieveUpdateDestroyAPIView):
    queryset = RoomType.objects.all()
    serializer_class = RoomTypeSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_room_types'

    def perform_destroy(self, instance):
        if instance.rooms.exists():
            raise ConflictError('Room type still has rooms assigned.')
        instance.delete()


# ---------- Rooms ----------
class RoomListCreate(generics.ListCreateAPIView):
    queryset = Room.objects.select_related('room_type')
    serializer_class = RoomSerializer
    permission_classes = [IsAuthenticated, HasPermissionOrReadOnly]
    permission_code = 'manage_rooms'
    filterset_fields = ['status', 'room_type', 'floor']


class RoomDetail(generics.RetrieveUpdateDestroyAPIView):
    queryset = Room.objects.all()
    serializer_class = RoomSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_rooms'

    def perform_destroy(self, instance):
        if instance.bookings.exists():
            raise ConflictError('Room has bookings and cannot be deleted.')
        instance.delete()


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def available_rooms(request):
    qs = Room.objects.filter(status=Room.STATUS_AVAILABLE, available_for_booking=True).select_related('room_type')
    room_type = request.query_params.get('room_type')
    if room_type:
        qs = qs.filter(room_type_id=room_type)
    return Response(RoomSerializer(qs, many=True).data)


# ---------- Bookings ----------
INCLUDE_ALIASES = {'billItems': 'bill_items'}


class BookingListCreate(generics.ListCreateAPIView):
    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_bookings', 'POST': 'create_booking'}

    def get_queryset(self):
        qs = Booking.objects.select_related('room', 'room_type').order_by('-created_at')
        status_filter = self.request.query_params.get('status')
        if status_filter:
            qs = qs.filter(status=normalize_status(status_filter))
        includes = self._includes()
        if 'invoices' in includes:
            qs = qs.prefetch_related('invoices__items', 'invoices__payments')
        if 'bill_items' in includes:
            qs = qs.prefetch_related('bill_items')
        return qs

    def _includes(self):
        """?include=invoices,billItems"""
        requested = self.request.query_params.get('include', '').split(',')
        return {INCLUDE_ALIASES.get(name.strip(), name.strip()) for name in requested}

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        includes = self._includes()
        ctx['include_invoices'] = 'invoices' in includes
        ctx['include_bill_items'] = 'bill_items' in includes
        return ctx

    def create(self, request, *args, **kwargs):
        ser = BookingCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        booking = create_booking(room_type_id=data.pop('room_type'), created_by=request.user, **data)
        audit(request, 'create_booking', 'Booking', booking.pk, reference=booking.booking_reference)
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)


class BookingDetail(generics.RetrieveAPIView):
    queryset = Booking.objects.select_related('room', 'room_type').prefetch_related('invoices__items', 'bill_items')
    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {
        'GET': 'view_bookings', 'PUT': 'manage_bookings', 'PATCH': 'manage_bookings', 'DELETE': 'manage_bookings',
    }

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx['include_invoices'] = True
        ctx['include_bill_items'] = True
        return ctx

    def put(self, request, pk):
        ser = BookingUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        changes = dict(ser.validated_data)
        if 'room_type' in changes:
            changes['room_type_id'] = changes.pop('room_type')
        booking = update_booking(pk, processed_by=request.user, **changes)
        audit(request, 'update_booking', 'Booking', pk, fields=sorted(ser.validated_data))
        return Response(BookingSerializer(booking).data)

    patch = put

    def delete(self, request, pk):
        result = delete_booking(pk, processed_by=request.user)
        audit(
            request, 'delete_booking', 'Booking', pk,
            reference=result['booking_reference'], reversed_amount=str(result['reversed_amount']),
        )
        return Response(result)


# ---------- Booking bill ----------
class BillItemListCreate(generics.ListAPIView):
    serializer_class = BillItemSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_bookings', 'POST': 'manage_bookings'}
    pagination_class = None

    def get_queryset(self):
        return BillItem.objects.filter(booking_id=self.kwargs['pk'])

    def list(self, request, *args, **kwargs):
        if not Booking.objects.filter(pk=kwargs['pk']).exists():
            raise NotFound('Booking not found.')
        return super().list(request, *args, **kwargs)

    def post(self, request, pk):
        ser = BillItemCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        item = billing.add_bill_item(pk, added_by=request.user, **ser.validated_data)
        audit(request, 'add_bill_item', 'Booking', pk, item=item.pk, amount=str(item.final_amount))
        return Response(
            {'bill_item': BillItemSerializer(item).data, 'booking': BookingSerializer(item.booking).data},
            status=status.HTTP_201_CREATED,
        )


class BillItemDetail(generics.GenericAPIView):
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_bookings'

    def put(self, request, pk, item_pk):
        ser = BillItemUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        item = billing.update_bill_item(pk, item_pk, **ser.validated_data)
        audit(request, 'update_bill_item', 'Booking', pk, item=item_pk, amount=str(item.final_amount))
        return Response({'bill_item': BillItemSerializer(item).data, 'booking': BookingSerializer(item.booking).data})

    patch = put

    def delete(self, request, pk, item_pk):
        result = billing.remove_bill_item(pk, item_pk)
        audit(request, 'remove_bill_item', 'Booking', pk, item=item_pk, amount=str(result['removed_amount']))
        return Response(result)


class SplitPaymentView(generics.GenericAPIView):
    """GET the booking's split plan; PUT {splits: [{amount, method, description}]} replaces it."""
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_bookings', 'PUT': 'post_payment'}

    def get(self, request, pk):
        booking = Booking.objects.filter(pk=pk).first()
        if booking is None:
            raise NotFound('Booking not found.')
        return Response(SplitPaymentSerializer(booking.split_payments.all(), many=True).data)

    def put(self, request, pk):
        ser = SplitPaymentSetupSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        parts = billing.setup_split_payments(pk, ser.validated_data['splits'])
        return Response(SplitPaymentSerializer(parts, many=True).data)


# ---------- Invoices ----------
class InvoiceListCreate(generics.ListCreateAPIView):
    serializer_class = InvoiceSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_invoices', 'POST': 'manage_invoices'}
    filterset_fields = ['status', 'booking']

    def get_queryset(self):
        return (
            Invoice.objects.select_related('booking')
            .prefetch_related('items', 'payments')
            .order_by('-issued_date', '-id')
        )

    def create(self, request, *args, **kwargs):
        ser = InvoiceCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        outcome = billing.create_invoice(booking_id=data.pop('booking'), created_by=request.user, **data)
        audit(request, 'create_invoice', 'Invoice', outcome.invoice.pk, number=outcome.invoice.invoice_number)
        return Response({
            'invoice': InvoiceSerializer(outcome.invoice).data,
            'payment': PaymentSerializer(outcome.payment).data if outcome.payment else None,
            'payment_created': outcome.payment_created,
            'revenue_posting': outcome.revenue_posting.status if outcome.revenue_posting else None,
        }, status=status.HTTP_201_CREATED)


class InvoiceDetail(generics.RetrieveAPIView):
    queryset = Invoice.objects.select_related('booking').prefetch_related('items', 'payments')
    serializer_class = InvoiceSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_invoices', 'PATCH': 'manage_invoices', 'DELETE': 'manage_invoices'}

    def patch(self, request, pk):
        ser = InvoiceStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        invoice = billing.update_invoice_status(pk, ser.validated_data['status'])
        return Response(InvoiceSerializer(invoice).data)

    def delete(self, request, pk):
        reason = request.data.get('reason') or request.query_params.get('reason', '')
        result = billing.delete_invoice(pk, reason=reason, processed_by=request.user)
        audit(request, 'delete_invoice', 'Invoice', pk, number=result['invoice_number'], reason=reason)
        return Response(result)


# ---------- Payments ----------
class PaymentListCreate(generics.ListCreateAPIView):
    """GET ?booking=<id> returns that booking's payments with a summary."""
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_invoices', 'POST': 'post_payment'}
    filterset_fields = ['method', 'status']

    def get_queryset(self):
        return Payment.objects.select_related('booking', 'received_by').order_by('-received_at')

    def list(self, request, *args, **kwargs):
        booking_id = request.query_params.get('booking')
        if not booking_id:
            return super().list(request, *args, **kwargs)
        booking = Booking.objects.filter(pk=booking_id).first()
        if booking is None:
            raise NotFound('Booking not found.')
        summary = billing.payment_summary(booking)
        summary['payments'] = PaymentSerializer(self.get_queryset().filter(booking=booking), many=True).data
        return Response(summary)

    def create(self, request, *args, **kwargs):
        ser = PaymentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        outcome = billing.record_payment(
            booking_id=data.pop('booking'), invoice_id=data.pop('invoice', None),
            received_by=request.user, **data,
        )
        if outcome.created:
            audit(request, 'post_payment', 'Payment', outcome.payment.pk, amount=str(outcome.payment.amount))
        return Response(
            {'payment': PaymentSerializer(outcome.payment).data, 'created': outcome.created},
            status=status.HTTP_201_CREATED if outcome.created else status.HTTP_200_OK,
        )


class PaymentDetail(generics.RetrieveAPIView):
    queryset = Payment.objects.select_related('booking')
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_invoices', 'PUT': 'manage_payments', 'DELETE': 'manage_payments'}

    def put(self, request, pk):
        ser = PaymentUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        payment = billing.update_payment(pk, processed_by=request.user, **ser.validated_data)
        audit(request, 'update_payment', 'Payment', pk, amount=str(payment.amount))
        return Response(PaymentSerializer(payment).data)

    def delete(self, request, pk):
        reason = request.data.get('reason') or request.query_params.get('reason', '')
        result = billing.delete_payment(pk, reason=reason, processed_by=request.user)
        audit(request, 'delete_payment', 'Payment', pk, reversed_amount=str(result['reversed_amount']))
        return Response(result)
