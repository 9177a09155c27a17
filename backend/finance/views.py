"""
Finance: tax settings + calculator, bank accounts and ledger reports, expense types, expenses,
ledger posting outbox and reconciliation.
"""
from rest_framework import generics, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import ValidationError
from core.middleware import audit
from core.permissions import HasPermission, HasPermissionOrReadOnly, IsManager
from . import expenses, ledger, postings
from .models import TaxSettings, Tax, BankAccount, LedgerPosting, ExpenseType, Expense
from .serializers import (
    TaxSettingsSerializer, TaxSerializer, TaxCalculationSerializer, BankAccountSerializer,
    TransactionSerializer, LedgerPostingSerializer, AccountCreateSerializer, AccountMovementSerializer,
    TransferSerializer, ExpenseTypeSerializer, ExpenseSerializer, ExpenseCreateSerializer,
)
from .tax import calculate_taxes, load_tax_config


# ---------- Tax (Admin only) ----------
class TaxSettingsDetail(generics.RetrieveUpdateAPIView):
    serializer_class = TaxSettingsSerializer
    permission_classes = [IsAuthenticated, HasPermissionOrReadOnly]
    permission_code = 'manage_taxes'

    def get_object(self):
        return TaxSettings.load()

    def perform_update(self, serializer):
        serializer.save(updated_by=self.request.user)


class TaxListCreate(generics.ListCreateAPIView):
    queryset = Tax.objects.all()
    serializer_class = TaxSerializer
    permission_classes = [IsAuthenticated, HasPermissionOrReadOnly]
    permission_code = 'manage_taxes'


class TaxDetail(generics.RetrieveUpdateDestroyAPIView):
    queryset = Tax.objects.all()
    serializer_class = TaxSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_taxes'


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def calculate_taxes_view(request):
    """Preview the tax breakdown for a base amount with the current configuration."""
    ser = TaxCalculationSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    breakdown = calculate_taxes(ser.validated_data['base_amount'], load_tax_config())
    return Response(breakdown.as_dict())


# ---------- Accounts ----------
class AccountsView(APIView):
    """
    GET  ?action=balances|summary|breakdown|transactions|cashflow|user-accounts
    POST {action: create_account|deposit|withdraw|transfer}
    """
    permission_classes = [IsAuthenticated, HasPermission]
    permission_codes = {'GET': 'view_accounts', 'POST': 'manage_accounts'}

    def get(self, request):
        action = request.query_params.get('action', 'balances')
        params = request.query_params
        if action == 'balances':
            data = ledger.account_balances()
            data['accounts'] = BankAccountSerializer(data['accounts'], many=True).data
            return Response(data)
        if action == 'summary':
            return Response(ledger.account_summary(params.get('period', 'month'), params.get('account')))
        if action == 'breakdown':
            return Response(ledger.revenue_breakdown(params.get('period', 'month')))
        if action == 'transactions':
            limit = self._int_param(params, 'limit', 50)
            txns = ledger.recent_transactions(limit=limit, account_id=params.get('account'))
            return Response({'transactions': TransactionSerializer(txns, many=True).data})
        if action == 'cashflow':
            return Response({'cashflow': ledger.cashflow(days=self._int_param(params, 'days', 30))})
        if action == 'user-accounts':
            return Response({'accounts': BankAccountSerializer(ledger.user_accounts(), many=True).data})
        raise ValidationError({'action': [f'Unknown action: {action}']})

    def post(self, request):
        action = request.data.get('action')
        user = request.user
        if action == 'create_account':
            ser = AccountCreateSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            account = ledger.create_account(processed_by=user, **ser.validated_data)
            return Response(BankAccountSerializer(account).data, status=status.HTTP_201_CREATED)
        if action in ('deposit', 'withdraw'):
            ser = AccountMovementSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            move = ledger.manual_deposit if action == 'deposit' else ledger.manual_withdrawal
            txn = move(processed_by=user, **ser.validated_data)
            return Response(TransactionSerializer(txn).data, status=status.HTTP_201_CREATED)
        if action == 'transfer':
            ser = TransferSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            d = ser.validated_data
            out_txn, in_txn = ledger.transfer_between_accounts(
                d['from_account'], d['to_account'], d['amount'], d['description'], processed_by=user,
            )
            return Response(
                {'debit': TransactionSerializer(out_txn).data, 'credit': TransactionSerializer(in_txn).data},
                status=status.HTTP_201_CREATED,
            )
        raise ValidationError({'action': [f'Unknown action: {action}']})

    @staticmethod
    def _int_param(params, name, default):
        try:
            value = int(params.get(name, default))
        except (TypeError, ValueError):
            raise ValidationError({name: ['Must be an integer.']})
        if value < 1:
            raise ValidationError({name: ['Must be positive.']})
        return value


class BankAccountDetail(generics.RetrieveUpdateAPIView):
    """Rename/deactivate an account; balances only move through the ledger."""
    queryset = BankAccount.objects.all()
    serializer_class = BankAccountSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_accounts'


# ---------- Ledger outbox / reconciliation ----------
class LedgerPostingList(generics.ListAPIView):
    queryset = LedgerPosting.objects.all().order_by('-created_at')
    serializer_class = LedgerPostingSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'view_accounts'
    filterset_fields = ['status', 'kind', 'booking_id']


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManager])
def retry_ledger_postings(request):
    done, failed = postings.process_pending()
    return Response({'done': done, 'failed': failed})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsManager])
def reconcile_ledger(request):
    """GET reports balance drift; POST also rewrites cached balances from the ledger."""
    fix = request.method == 'POST'
    drift = ledger.reconcile_balances(fix=fix)
    if fix and drift:
        audit(request, 'reconcile_ledger', 'BankAccount', '', accounts=[d['account_id'] for d in drift])
    return Response({'fixed': fix, 'drift': drift})


# ---------- Expense types ----------
class ExpenseTypeListCreate(generics.ListCreateAPIView):
    queryset = ExpenseType.objects.all()
    serializer_class = ExpenseTypeSerializer
    permission_classes = [IsAuthenticated, HasPermissionOrReadOnly]
    permission_code = 'manage_expense_types'


class ExpenseTypeDetail(generics.RetrieveUpdateDestroyAPIView):
    queryset = ExpenseType.objects.all()
    serializer_class = ExpenseTypeSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_expense_types'

    def perform_destroy(self, instance):
        if instance.expenses.exists():
            instance.is_active = False
            instance.save(update_fields=['is_active'])
            return
        instance.delete()


# ---------- Expense ----------
class ExpenseListCreate(generics.ListCreateAPIView):
    serializer_class = ExpenseSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'view_expenses'
    filterset_fields = ['status', 'expense_type']

    def get_queryset(self):
        qs = Expense.objects.select_related('expense_type', 'account', 'recorded_by').order_by('-created_at')
        user = self.request.user
        if not user.is_admin_or_owner:
            qs = qs.filter(recorded_by=user)
        return qs

    def create(self, request, *args, **kwargs):
        ser = ExpenseCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        expense = expenses.record_expense(user=request.user, **ser.validated_data)
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManager])
def expense_decision(request, pk, decision):
    if decision == 'approve':
        expense = expenses.approve_expense(pk, request.user)
    else:
        expense = expenses.reject_expense(pk, request.user)
    audit(request, f'{decision}_expense', 'Expense', pk, amount=str(expense.amount))
    return Response(ExpenseSerializer(expense).data)
