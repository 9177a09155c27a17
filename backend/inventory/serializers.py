from decimal import Decimal

from rest_framework import serializers

from core.exceptions import ConflictError
from .models import InventoryCategory, InventoryItem, InventoryTransaction, InventoryAlert


class InventoryCategorySerializer(serializers.ModelSerializer):
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = InventoryCategory
        fields = ['id', 'name', 'description', 'is_active', 'item_count', 'created_at']
        extra_kwargs = {'name': {'validators': []}}

    def get_item_count(self, obj):
        return obj.items.filter(is_active=True).count()

    def validate_name(self, value):
        qs = InventoryCategory.objects.filter(name__iexact=value.strip())
        if self.instance:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise ConflictError('Category with this name already exists.')
        return value.strip()


class InventoryItemSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    is_low_stock = serializers.SerializerMethodField()

    class Meta:
        model = InventoryItem
        fields = [
            'id', 'name', 'sku', 'barcode', 'category', 'category_name', 'description', 'unit',
            'current_stock', 'minimum_stock', 'maximum_stock', 'unit_cost', 'selling_price',
            'supplier', 'location', 'is_active', 'is_low_stock', 'created_at', 'updated_at',
        ]
        read_only_fields = ['current_stock', 'created_at', 'updated_at']
        extra_kwargs = {
            'sku': {'validators': []},
            'barcode': {'validators': []},
            'minimum_stock': {'min_value': Decimal('0')},
            'maximum_stock': {'min_value': Decimal('0')},
            'unit_cost': {'min_value': Decimal('0')},
            'selling_price': {'min_value': Decimal('0')},
        }

    def get_is_low_stock(self, obj):
        return obj.current_stock <= obj.minimum_stock

    def _unique(self, field, value):
        value = (value or '').strip() or None
        if value is None:
            return None
        qs = InventoryItem.objects.filter(**{field: value})
        if self.instance:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise ConflictError(f'An item with this {field} already exists.')
        return value

    def validate_sku(self, value):
        return self._unique('sku', value)

    def validate_barcode(self, value):
        return self._unique('barcode', value)

    def validate(self, attrs):
        minimum = attrs.get('minimum_stock', getattr(self.instance, 'minimum_stock', Decimal('0')))
        maximum = attrs.get('maximum_stock', getattr(self.instance, 'maximum_stock', None))
        if maximum is not None and minimum > maximum:
            raise serializers.ValidationError({'maximum_stock': 'Maximum stock must not be below minimum stock.'})
        return attrs


class InventoryTransactionSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    processed_by_name = serializers.SerializerMethodField()

    class Meta:
        model = InventoryTransaction
        fields = [
            'id', 'item', 'item_name', 'transaction_type', 'quantity', 'unit_price', 'total_amount',
            'previous_stock', 'new_stock', 'reference_number', 'supplier', 'notes',
            'processed_by', 'processed_by_name', 'transaction_date',
        ]

    def get_processed_by_name(self, obj):
        return obj.processed_by.get_full_name() if obj.processed_by else ''


class InventoryTransactionCreateSerializer(serializers.Serializer):
    item = serializers.IntegerField()
    transaction_type = serializers.ChoiceField(choices=InventoryTransaction.TYPE_CHOICES)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    reference_number = serializers.CharField(max_length=64, required=False, allow_blank=True, default='')
    supplier = serializers.CharField(max_length=128, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    transaction_date = serializers.DateTimeField(required=False)


class InventoryAlertSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)

    class Meta:
        model = InventoryAlert
        fields = [
            'id', 'item', 'item_name', 'alert_type', 'message', 'current_stock', 'threshold',
            'is_read', 'is_resolved', 'resolved_by', 'resolved_at', 'created_at',
        ]


class InventoryAlertUpdateSerializer(serializers.Serializer):
    is_read = serializers.BooleanField(required=False)
    is_resolved = serializers.BooleanField(required=False)
