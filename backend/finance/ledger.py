"""
Account ledger: main/user accounts, immutable transactions, atomic balance updates,
revenue hooks for payments, expense deduction, reporting and reconciliation.

Balances change only through F() expressions so concurrent postings never lose updates.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.apps import apps
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from core.exceptions import (
    ConflictError, InsufficientBalance, InvalidAmount, MultipleMainAccounts, NotFound, ValidationError,
)
from .models import BankAccount, Transaction
from .tax import ZERO, money

logger = logging.getLogger(__name__)

MAIN_ACCOUNT_NAME = 'Main Hotel Account'

# Breakdown component -> revenue category; order breaks ties
BREAKDOWN_CATEGORIES = (
    ('accommodation', Transaction.ACCOMMODATION_REVENUE),
    ('extra_charges', Transaction.OTHER_SERVICES_REVENUE),
    ('taxes', Transaction.TAX_COLLECTED),
)

PERIODS = {'day': 1, 'week': 7, 'month': 30, 'year': 365}


@dataclass(frozen=True)
class Reference:
    """Tagged pointer from a Transaction to the business object it came from."""
    kind: str
    id: int

    MODELS = {
        Transaction.REF_BOOKING: 'hotel.Booking',
        Transaction.REF_INVOICE: 'hotel.Invoice',
        Transaction.REF_PAYMENT: 'hotel.Payment',
        Transaction.REF_EXPENSE: 'finance.Expense',
    }

    def __post_init__(self):
        if self.kind not in self.MODELS:
            raise ValueError(f'Unknown reference kind: {self.kind}')

    @classmethod
    def of(cls, txn):
        if not txn.reference_type or txn.reference_id is None:
            return None
        return cls(txn.reference_type, txn.reference_id)

    def resolve(self):
        """The referenced row, or None when it has been deleted."""
        model = apps.get_model(self.MODELS[self.kind])
        return model.objects.filter(pk=self.id).first()


def booking_reference_filter(booking_id, invoice_ids=(), payment_ids=()) -> Q:
    """Transactions referencing a booking, its invoices or its payments."""
    q = Q(reference_type=Transaction.REF_BOOKING, reference_id=booking_id)
    if invoice_ids:
        q |= Q(reference_type=Transaction.REF_INVOICE, reference_id__in=list(invoice_ids))
    if payment_ids:
        q |= Q(reference_type=Transaction.REF_PAYMENT, reference_id__in=list(payment_ids))
    return q


# ---------- Accounts ----------
def _main_accounts():
    return BankAccount.objects.filter(is_main_account=True, is_active=True)


def get_main_account() -> BankAccount:
    accounts = list(_main_accounts()[:2])
    if len(accounts) > 1:
        logger.error('Ledger invariant broken: %s active main accounts', len(accounts))
        raise MultipleMainAccounts()
    if not accounts:
        raise NotFound('Main account not found. Please create a main account first.')
    return accounts[0]


def get_or_create_main_account() -> BankAccount:
    """First-run bootstrap: create the main account with a zero balance."""
    try:
        return get_main_account()
    except NotFound:
        pass
    try:
        with transaction.atomic():
            account = BankAccount.objects.create(
                account_name=MAIN_ACCOUNT_NAME,
                account_type=BankAccount.TYPE_MAIN,
                is_main_account=True,
                balance=ZERO,
            )
    except IntegrityError:
        # Created concurrently; the unique constraint guarantees there is exactly one
        return get_main_account()
    logger.info('Main account created (id=%s)', account.pk)
    return account


def get_or_create_user_account(user) -> BankAccount:
    account = (
        BankAccount.objects.filter(owner=user, is_active=True, is_main_account=False)
        .order_by('created_at', 'id')
        .first()
    )
    if account:
        return account
    name = user.get_full_name() or user.username
    account = BankAccount.objects.create(
        account_name=f"{name}'s Account",
        account_type=BankAccount.TYPE_CURRENT,
        owner=user,
        balance=ZERO,
    )
    logger.info('User account %s created for user %s', account.pk, user.pk)
    return account


def create_account(account_name, account_type=BankAccount.TYPE_CURRENT, owner=None,
                   initial_balance=ZERO, account_number='', bank_name='', processed_by=None) -> BankAccount:
    """New account; an opening balance is booked as a deposit so the log matches the balance."""
    initial_balance = money(initial_balance)
    if initial_balance < 0:
        raise InvalidAmount('Opening balance cannot be negative.')
    is_main = account_type == BankAccount.TYPE_MAIN
    if is_main and _main_accounts().exists():
        raise ConflictError('A main account already exists.')
    try:
        with transaction.atomic():
            account = BankAccount.objects.create(
                account_name=account_name,
                account_type=account_type,
                account_number=account_number,
                bank_name=bank_name,
                owner=owner,
                is_main_account=is_main,
                balance=ZERO,
            )
            if initial_balance > 0:
                post_to_account(
                    account, Transaction.TYPE_CREDIT, Transaction.DEPOSIT, initial_balance,
                    description='Opening balance', processed_by=processed_by,
                )
    except IntegrityError:
        raise ConflictError('A main account already exists.')
    account.refresh_from_db()
    return account


# ---------- Postings ----------
def add_transaction(account, transaction_type, category, amount, reference=None, description='',
                    processed_by=None, is_modification=False, original_amount=None,
                    modification_reason='') -> Transaction:
    """Write one ledger row without touching the balance (audit rows, or inside post_to_account)."""
    return Transaction.objects.create(
        account=account,
        transaction_type=transaction_type,
        category=category,
        amount=money(amount),
        description=description[:512],
        reference_type=reference.kind if reference else '',
        reference_id=reference.id if reference else None,
        processed_by=processed_by,
        is_modification=is_modification,
        original_amount=money(original_amount) if original_amount is not None else None,
        modification_reason=(modification_reason or '')[:512],
    )


def _shift_balance(account_id, delta: Decimal, floor=None) -> int:
    qs = BankAccount.objects.filter(pk=account_id)
    if floor is not None:
        qs = qs.filter(balance__gte=floor)
    return qs.update(balance=F('balance') + delta, updated_at=timezone.now())


def post_to_account(account, transaction_type, category, amount, **kwargs) -> Transaction:
    """Transaction row + balance change, committed together."""
    amount = money(amount)
    if amount <= 0:
        raise InvalidAmount(f'Posting amount must be positive ({amount}).')
    delta = amount if transaction_type == Transaction.TYPE_CREDIT else -amount
    with transaction.atomic():
        txn = add_transaction(account, transaction_type, category, amount, **kwargs)
        _shift_balance(account.pk, delta)
    return txn


def _withdraw(account, amount: Decimal):
    """Conditional decrement; raises InsufficientBalance instead of going below zero."""
    if not _shift_balance(account.pk, -amount, floor=amount):
        current = BankAccount.objects.filter(pk=account.pk).values_list('balance', flat=True).first()
        raise InsufficientBalance(
            f'Insufficient balance in {account.account_name}. Available: {current}, required: {amount}.'
        )


def ensure_sufficient_balance(account, amount):
    amount = money(amount)
    account.refresh_from_db(fields=['balance'])
    if account.balance < amount:
        raise InsufficientBalance(
            f'Insufficient balance. Available: {account.balance}, required: {amount}.'
        )


# ---------- Revenue hooks ----------
def on_payment_completed(booking_id, amount, processed_by=None, reference=None, description='',
                         category=Transaction.ACCOMMODATION_REVENUE) -> Transaction:
    main = get_or_create_main_account()
    return post_to_account(
        main, Transaction.TYPE_CREDIT, category, amount,
        reference=reference or Reference(Transaction.REF_BOOKING, booking_id),
        description=description or f'Payment received for booking #{booking_id}',
        processed_by=processed_by,
    )


def on_payment_reversed(booking_id, amount, processed_by=None, reference=None, description='') -> Transaction:
    main = get_or_create_main_account()
    return post_to_account(
        main, Transaction.TYPE_DEBIT, Transaction.REFUNDS, amount,
        reference=reference or Reference(Transaction.REF_BOOKING, booking_id),
        description=description or f'Payment reversed for booking #{booking_id}',
        processed_by=processed_by,
    )


def delete_revenue_for_booking(booking_id, invoice_ids=None, payment_ids=None, revenue_only=False) -> int:
    """
    Delete transactions referencing the booking or its invoice/payment ids.
    Ids default to the booking's current invoices and payments. Balances are left alone.
    """
    if invoice_ids is None or payment_ids is None:
        Invoice = apps.get_model('hotel', 'Invoice')
        Payment = apps.get_model('hotel', 'Payment')
        if invoice_ids is None:
            invoice_ids = list(Invoice.objects.filter(booking_id=booking_id).values_list('pk', flat=True))
        if payment_ids is None:
            payment_ids = list(Payment.objects.filter(booking_id=booking_id).values_list('pk', flat=True))
    qs = Transaction.objects.filter(booking_reference_filter(booking_id, invoice_ids, payment_ids))
    if revenue_only:
        qs = qs.filter(transaction_type=Transaction.TYPE_CREDIT, category__in=Transaction.REVENUE_CATEGORIES)
    deleted, _ = qs.delete()
    if deleted:
        logger.info('Deleted %s ledger transactions for booking #%s', deleted, booking_id)
    return deleted


def dominant_category(breakdown) -> str:
    best_key, best_category = BREAKDOWN_CATEGORIES[0]
    best_value = money(breakdown.get(best_key))
    for key, category in BREAKDOWN_CATEGORIES[1:]:
        value = money(breakdown.get(key))
        if value > best_value:
            best_value, best_category = value, category
    return best_category


def add_revenue_to_main_account(booking_id, amount, breakdown, method='', collected_by=None,
                                description='', reference=None) -> Transaction:
    """One consolidated credit, categorised by the largest breakdown component."""
    notes = ', '.join(f'{key}: {money(breakdown.get(key))}' for key, _ in BREAKDOWN_CATEGORIES)
    text = description or f'Revenue for booking #{booking_id}'
    if method:
        text = f'{text} via {method}'
    return post_to_account(
        get_or_create_main_account(),
        Transaction.TYPE_CREDIT,
        dominant_category(breakdown),
        amount,
        reference=reference or Reference(Transaction.REF_BOOKING, booking_id),
        description=f'{text} ({notes})',
        processed_by=collected_by,
    )


# ---------- Expenses ----------
def deduct_expense(expense, account, processed_by=None):
    """
    Debit the expense from the user account and the main account in one transaction.
    Returns the (user_txn, main_txn) pair; main_txn is None when the account is the main account.
    """
    amount = money(expense.amount)
    if amount <= 0:
        raise InvalidAmount('Expense amount must be positive.')
    main = get_main_account()
    reference = Reference(Transaction.REF_EXPENSE, expense.pk)
    description = f'Expense: {expense.title}'
    with transaction.atomic():
        _withdraw(account, amount)
        user_txn = add_transaction(
            account, Transaction.TYPE_DEBIT, Transaction.OTHER_EXPENSE, amount,
            reference=reference, description=description, processed_by=processed_by,
        )
        main_txn = None
        if main.pk != account.pk:
            _shift_balance(main.pk, -amount)
            main_txn = add_transaction(
                main, Transaction.TYPE_DEBIT, Transaction.OTHER_EXPENSE, amount,
                reference=reference, description=f'{description} (from {account.account_name})',
                processed_by=processed_by,
            )
    logger.info('Expense #%s deducted: %s from account %s', expense.pk, amount, account.pk)
    return user_txn, main_txn


# ---------- Manual movements ----------
def manual_deposit(account, amount, description='', processed_by=None) -> Transaction:
    return post_to_account(
        account, Transaction.TYPE_CREDIT, Transaction.DEPOSIT, amount,
        description=description or 'Manual deposit', processed_by=processed_by,
    )


def manual_withdrawal(account, amount, description='', processed_by=None) -> Transaction:
    amount = money(amount)
    if amount <= 0:
        raise InvalidAmount('Withdrawal amount must be positive.')
    with transaction.atomic():
        _withdraw(account, amount)
        return add_transaction(
            account, Transaction.TYPE_DEBIT, Transaction.WITHDRAWAL, amount,
            description=description or 'Manual withdrawal', processed_by=processed_by,
        )


def transfer_between_accounts(source, target, amount, description='', processed_by=None):
    amount = money(amount)
    if amount <= 0:
        raise InvalidAmount('Transfer amount must be positive.')
    if source.pk == target.pk:
        raise ConflictError('Cannot transfer to the same account.')
    text = description or f'Transfer {source.account_name} -> {target.account_name}'
    with transaction.atomic():
        _withdraw(source, amount)
        _shift_balance(target.pk, amount)
        out_txn = add_transaction(
            source, Transaction.TYPE_DEBIT, Transaction.TRANSFER, amount,
            description=text, processed_by=processed_by,
        )
        in_txn = add_transaction(
            target, Transaction.TYPE_CREDIT, Transaction.TRANSFER, amount,
            description=text, processed_by=processed_by,
        )
    return out_txn, in_txn


# ---------- Reporting ----------
def _period_start(period: str):
    days = PERIODS.get(period)
    if days is None:
        raise ValidationError({'period': [f'Unknown period: {period}']})
    return timezone.now() - timedelta(days=days)


def _effective():
    """Transactions that move balances (audit rows excluded)."""
    return Transaction.objects.filter(is_modification=False)


def account_balances():
    accounts = list(BankAccount.objects.filter(is_active=True).select_related('owner'))
    total = sum((a.balance for a in accounts), ZERO)
    main = next((a for a in accounts if a.is_main_account), None)
    return {
        'accounts': accounts,
        'total_balance': total,
        'main_account_balance': main.balance if main else ZERO,
    }


def account_summary(period='month', account_id=None):
    qs = _effective().filter(created_at__gte=_period_start(period))
    if account_id:
        qs = qs.filter(account_id=account_id)
    agg = qs.aggregate(
        total_credits=Sum('amount', filter=Q(transaction_type=Transaction.TYPE_CREDIT)),
        total_debits=Sum('amount', filter=Q(transaction_type=Transaction.TYPE_DEBIT)),
        credit_count=Count('id', filter=Q(transaction_type=Transaction.TYPE_CREDIT)),
        debit_count=Count('id', filter=Q(transaction_type=Transaction.TYPE_DEBIT)),
    )
    credits = agg['total_credits'] or ZERO
    debits = agg['total_debits'] or ZERO
    return {
        'period': period,
        'total_credits': credits,
        'total_debits': debits,
        'net_amount': credits - debits,
        'credit_count': agg['credit_count'],
        'debit_count': agg['debit_count'],
        'transaction_count': agg['credit_count'] + agg['debit_count'],
    }


def revenue_breakdown(period='month'):
    rows = (
        _effective()
        .filter(transaction_type=Transaction.TYPE_CREDIT, created_at__gte=_period_start(period))
        .values('category')
        .annotate(total=Sum('amount'), count=Count('id'))
        .order_by('-total')
    )
    rows = list(rows)
    grand = sum((r['total'] for r in rows), ZERO)
    for r in rows:
        r['percentage'] = money(r['total'] * 100 / grand) if grand else ZERO
    return {'period': period, 'total': grand, 'categories': rows}


def recent_transactions(limit=50, account_id=None):
    qs = Transaction.objects.select_related('account', 'processed_by')
    if account_id:
        qs = qs.filter(account_id=account_id)
    return qs[:limit]


def cashflow(days=30):
    start = timezone.now() - timedelta(days=days)
    rows = (
        _effective()
        .filter(created_at__gte=start)
        .annotate(day=TruncDate('created_at'))
        .values('day')
        .annotate(
            credits=Sum('amount', filter=Q(transaction_type=Transaction.TYPE_CREDIT)),
            debits=Sum('amount', filter=Q(transaction_type=Transaction.TYPE_DEBIT)),
        )
        .order_by('day')
    )
    data = []
    for r in rows:
        credits = r['credits'] or ZERO
        debits = r['debits'] or ZERO
        data.append({'date': r['day'].isoformat(), 'credits': credits, 'debits': debits, 'net': credits - debits})
    return data


def user_accounts():
    return BankAccount.objects.filter(is_active=True, owner__isnull=False).select_related('owner')


# ---------- Reconciliation ----------
def reconcile_balances(fix=False):
    """
    Recompute every account balance from its effective transactions and report drift.
    With fix=True the cached balance is overwritten with the recomputed one.
    """
    sums = dict(
        _effective()
        .values('account_id')
        .annotate(
            net=Sum('amount', filter=Q(transaction_type=Transaction.TYPE_CREDIT), default=ZERO)
            - Sum('amount', filter=Q(transaction_type=Transaction.TYPE_DEBIT), default=ZERO)
        )
        .values_list('account_id', 'net')
    )
    report = []
    for account in BankAccount.objects.all():
        expected = money(sums.get(account.pk) or ZERO)
        drift = money(account.balance) - expected
        if drift:
            logger.warning(
                'Balance drift on account %s: cached %s, ledger %s', account.pk, account.balance, expected
            )
            report.append({
                'account_id': account.pk,
                'account_name': account.account_name,
                'cached_balance': account.balance,
                'ledger_balance': expected,
                'drift': drift,
            })
            if fix:
                BankAccount.objects.filter(pk=account.pk).update(balance=expected, updated_at=timezone.now())
    return report
