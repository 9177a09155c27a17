from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework import serializers

from core.exceptions import ConflictError
from .models import TaxSettings, Tax, BankAccount, Transaction, LedgerPosting, ExpenseType, Expense

User = get_user_model()


class TaxSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = TaxSettings
        fields = ['gst_percentage', 'service_tax_percentage', 'tax_enabled', 'updated_at']
        read_only_fields = ['updated_at']
        extra_kwargs = {
            'gst_percentage': {'min_value': Decimal('0')},
            'service_tax_percentage': {'min_value': Decimal('0')},
        }


class TaxSerializer(serializers.ModelSerializer):
    class Meta:
        model = Tax
        fields = ['id', 'name', 'code', 'percentage', 'is_active']
        extra_kwargs = {'percentage': {'min_value': Decimal('0')}}


class TaxCalculationSerializer(serializers.Serializer):
    base_amount = serializers.DecimalField(max_digits=14, decimal_places=2)


class BankAccountSerializer(serializers.ModelSerializer):
    owner_name = serializers.SerializerMethodField()

    class Meta:
        model = BankAccount
        fields = [
            'id', 'account_name', 'account_type', 'account_number', 'bank_name', 'balance',
            'is_main_account', 'is_active', 'owner', 'owner_name', 'created_at', 'updated_at',
        ]
        read_only_fields = ['balance', 'is_main_account', 'owner', 'account_type', 'created_at', 'updated_at']

    def get_owner_name(self, obj):
        return obj.owner.get_full_name() or obj.owner.username if obj.owner else ''


class TransactionSerializer(serializers.ModelSerializer):
    account_name = serializers.CharField(source='account.account_name', read_only=True)
    processed_by_name = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            'id', 'account', 'account_name', 'transaction_type', 'category', 'amount', 'description',
            'reference_type', 'reference_id', 'processed_by', 'processed_by_name',
            'is_modification', 'original_amount', 'modification_reason', 'created_at',
        ]

    def get_processed_by_name(self, obj):
        return obj.processed_by.get_full_name() if obj.processed_by else ''


class LedgerPostingSerializer(serializers.ModelSerializer):
    class Meta:
        model = LedgerPosting
        fields = [
            'id', 'kind', 'booking_id', 'amount', 'payload', 'status', 'attempts', 'last_error',
            'transaction', 'created_at', 'processed_at',
        ]


class AccountCreateSerializer(serializers.Serializer):
    account_name = serializers.CharField(max_length=128)
    account_type = serializers.ChoiceField(choices=BankAccount.TYPE_CHOICES, default=BankAccount.TYPE_CURRENT)
    account_number = serializers.CharField(max_length=64, required=False, allow_blank=True, default='')
    bank_name = serializers.CharField(max_length=128, required=False, allow_blank=True, default='')
    initial_balance = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    owner = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(), required=False, allow_null=True
    )


class AccountMovementSerializer(serializers.Serializer):
    """deposit / withdraw."""
    account = serializers.PrimaryKeyRelatedField(queryset=BankAccount.objects.filter(is_active=True))
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    description = serializers.CharField(max_length=256, required=False, allow_blank=True, default='')


class TransferSerializer(serializers.Serializer):
    from_account = serializers.PrimaryKeyRelatedField(queryset=BankAccount.objects.filter(is_active=True))
    to_account = serializers.PrimaryKeyRelatedField(queryset=BankAccount.objects.filter(is_active=True))
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    description = serializers.CharField(max_length=256, required=False, allow_blank=True, default='')


class ExpenseTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = ExpenseType
        fields = ['id', 'name', 'description', 'is_active', 'created_at']
        extra_kwargs = {'name': {'validators': []}}

    def validate_name(self, value):
        qs = ExpenseType.objects.filter(name__iexact=value.strip())
        if self.instance:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise ConflictError('Expense type with this name already exists.')
        return value.strip()


class ExpenseSerializer(serializers.ModelSerializer):
    expense_type_name = serializers.CharField(source='expense_type.name', read_only=True)
    account_name = serializers.CharField(source='account.account_name', read_only=True)
    recorded_by_name = serializers.SerializerMethodField()

    def get_recorded_by_name(self, obj):
        return obj.recorded_by.get_full_name() if obj.recorded_by else ''

    class Meta:
        model = Expense
        fields = [
            'id', 'expense_type', 'expense_type_name', 'title', 'description', 'amount', 'expense_date',
            'account', 'account_name', 'status', 'receipt_number', 'notes',
            'recorded_by', 'recorded_by_name', 'approved_by', 'approved_at', 'created_at',
        ]


class ExpenseCreateSerializer(serializers.Serializer):
    expense_type = serializers.PrimaryKeyRelatedField(
        queryset=ExpenseType.objects.filter(is_active=True), required=False, allow_null=True
    )
    title = serializers.CharField(max_length=256)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    expense_date = serializers.DateField(required=False)
    receipt_number = serializers.CharField(max_length=64, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    deduct_from_user = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(is_active=True),
        required=False, allow_null=True,
    )
