"""
Inventory: categories, items, stock transactions and alerts.
Stock levels change only through stock.record_transaction.
"""
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import ConflictError
from core.middleware import audit
from core.permissions import HasPermission, HasPermissionOrReadOnly
from . import stock
from .models import InventoryCategory, InventoryItem, InventoryTransaction, InventoryAlert
from .serializers import (
    InventoryCategorySerializer, InventoryItemSerializer, InventoryTransactionSerializer,
    InventoryTransactionCreateSerializer, InventoryAlertSerializer, InventoryAlertUpdateSerializer,
)


# ---------- Categories ----------
class CategoryListCreate(generics.ListCreateAPIView):
    queryset = InventoryCategory.objects.all()
    serializer_class = InventoryCategorySerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_inventory', 'POST': 'manage_inventory'}


class CategoryDetail(generics.RetrieveUpdateDestroyAPIView):
    queryset = InventoryCategory.objects.all()
    serializer_class = InventoryCategorySerializer
    permission_classes = [IsAuthenticated, HasPermissionOrReadOnly]
    permission_code = 'manage_inventory'

    def perform_destroy(self, instance):
        if instance.items.exists():
            raise ConflictError('Category still has items.')
        instance.delete()


# ---------- Items ----------
class ItemListCreate(generics.ListCreateAPIView):
    serializer_class = InventoryItemSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_inventory', 'POST': 'manage_inventory'}
    filterset_fields = ['category', 'is_active']

    def get_queryset(self):
        qs = InventoryItem.objects.select_related('category')
        search = self.request.query_params.get('search')
        if search:
            qs = qs.filter(name__icontains=search)
        return qs


class ItemDetail(generics.RetrieveUpdateDestroyAPIView):
    queryset = InventoryItem.objects.select_related('category')
    serializer_class = InventoryItemSerializer
    permission_classes = [IsAuthenticated, HasPermissionOrReadOnly]
    permission_code = 'manage_inventory'

    def destroy(self, request, *args, **kwargs):
        item = self.get_object()
        deleted = stock.retire_item(item)
        return Response({'id': kwargs['pk'], 'deleted': deleted, 'deactivated': not deleted})


# ---------- Transactions ----------
class TransactionListCreate(generics.ListCreateAPIView):
    """GET ?item=&type= ; POST records a stock movement and returns any alerts raised."""
    serializer_class = InventoryTransactionSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_inventory', 'POST': 'record_stock_movement'}

    def get_queryset(self):
        qs = InventoryTransaction.objects.select_related('item', 'processed_by')
        params = self.request.query_params
        if params.get('item'):
            qs = qs.filter(item_id=params['item'])
        if params.get('type'):
            qs = qs.filter(transaction_type=params['type'])
        return qs

    def create(self, request, *args, **kwargs):
        ser = InventoryTransactionCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        txn, alerts = stock.record_transaction(item_id=data.pop('item'), processed_by=request.user, **data)
        audit(request, f'stock_{txn.transaction_type}', 'InventoryItem', txn.item_id,
              quantity=str(txn.quantity), new_stock=str(txn.new_stock))
        return Response({
            'transaction': InventoryTransactionSerializer(txn).data,
            'alerts': InventoryAlertSerializer(alerts, many=True).data,
        }, status=status.HTTP_201_CREATED)


# ---------- Alerts ----------
class AlertList(generics.ListAPIView):
    serializer_class = InventoryAlertSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'view_inventory'
    filterset_fields = ['alert_type', 'is_read']

    def get_queryset(self):
        qs = InventoryAlert.objects.select_related('item')
        resolved = self.request.query_params.get('resolved')
        if resolved is not None:
            qs = qs.filter(is_resolved=resolved.lower() in ('1', 'true', 'yes'))
        return qs


class AlertDetail(generics.RetrieveAPIView):
    queryset = InventoryAlert.objects.select_related('item')
    serializer_class = InventoryAlertSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_inventory', 'PATCH': 'record_stock_movement'}

    def patch(self, request, pk):
        ser = InventoryAlertUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        alert = stock.resolve_alert(self.get_object(), user=request.user, **ser.validated_data)
        return Response(InventoryAlertSerializer(alert).data)
