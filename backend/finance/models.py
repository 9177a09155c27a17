"""
Finance: tax configuration, bank accounts, ledger transactions, ledger posting outbox, expenses.
Account balance is a running total; the Transaction log is the source of truth (see ledger.reconcile_balances).
"""
from decimal import Decimal
from django.db import models
from django.db.models import Q
from django.conf import settings
from django.utils import timezone


class TaxSettings(models.Model):
    """Hotel-wide tax configuration (single row). Other named taxes live in Tax."""
    gst_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    service_tax_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    tax_enabled = models.BooleanField(default=False)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'tax_settings'

    def __str__(self):
        state = 'on' if self.tax_enabled else 'off'
        return f'GST {self.gst_percentage}% / Service {self.service_tax_percentage}% ({state})'

    @classmethod
    def load(cls):
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj


class Tax(models.Model):
    """Admin-defined additional tax (Tourism Levy, City Tax). Applied on top of GST and service tax."""
    name = models.CharField(max_length=64)
    code = models.CharField(max_length=16, unique=True)
    percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'taxes'
        ordering = ['code']

    def __str__(self):
        return f'{self.name} ({self.percentage}%)'


class BankAccount(models.Model):
    """Named money pool. Exactly one active account is the main hotel account."""
    TYPE_MAIN = 'main'
    TYPE_CURRENT = 'current'
    TYPE_SAVINGS = 'savings'
    TYPE_PETTY_CASH = 'petty_cash'
    TYPE_CHOICES = [
        (TYPE_MAIN, 'Main'),
        (TYPE_CURRENT, 'Current'),
        (TYPE_SAVINGS, 'Savings'),
        (TYPE_PETTY_CASH, 'Petty Cash'),
    ]
    account_name = models.CharField(max_length=128)
    account_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_CURRENT)
    account_number = models.CharField(max_length=64, blank=True)
    bank_name = models.CharField(max_length=128, blank=True)
    balance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0'))
    is_main_account = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='bank_accounts'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bank_accounts'
        ordering = ['-is_main_account', 'account_name']
        constraints = [
            models.UniqueConstraint(
                fields=['is_main_account'],
                condition=Q(is_main_account=True, is_active=True),
                name='single_active_main_account',
            ),
        ]
        indexes = [models.Index(fields=['owner', 'account_type'])]

    def __str__(self):
        return f'{self.account_name} ({self.balance})'


class Transaction(models.Model):
    """Immutable ledger entry against one account. Corrections are compensating entries."""
    TYPE_CREDIT = 'credit'
    TYPE_DEBIT = 'debit'
    TYPE_CHOICES = [(TYPE_CREDIT, 'Credit'), (TYPE_DEBIT, 'Debit')]

    ACCOMMODATION_REVENUE = 'accommodation_revenue'
    OTHER_SERVICES_REVENUE = 'other_services_revenue'
    TAX_COLLECTED = 'tax_collected'
    REFUNDS = 'refunds'
    OTHER_EXPENSE = 'other_expense'
    DEPOSIT = 'deposit'
    WITHDRAWAL = 'withdrawal'
    TRANSFER = 'transfer'
    ADJUSTMENT = 'adjustment'
    CATEGORY_CHOICES = [
        (ACCOMMODATION_REVENUE, 'Accommodation Revenue'),
        (OTHER_SERVICES_REVENUE, 'Other Services Revenue'),
        (TAX_COLLECTED, 'Tax Collected'),
        (REFUNDS, 'Refunds'),
        (OTHER_EXPENSE, 'Other Expense'),
        (DEPOSIT, 'Deposit'),
        (WITHDRAWAL, 'Withdrawal'),
        (TRANSFER, 'Transfer'),
        (ADJUSTMENT, 'Adjustment'),
    ]
    REVENUE_CATEGORIES = (ACCOMMODATION_REVENUE, OTHER_SERVICES_REVENUE, TAX_COLLECTED)

    REF_BOOKING = 'booking'
    REF_INVOICE = 'invoice'
    REF_PAYMENT = 'payment'
    REF_EXPENSE = 'expense'
    REFERENCE_CHOICES = [
        (REF_BOOKING, 'Booking'),
        (REF_INVOICE, 'Invoice'),
        (REF_PAYMENT, 'Payment'),
        (REF_EXPENSE, 'Expense'),
    ]

    account = models.ForeignKey(BankAccount, on_delete=models.PROTECT, related_name='transactions')
    transaction_type = models.CharField(max_length=8, choices=TYPE_CHOICES)
    category = models.CharField(max_length=32, choices=CATEGORY_CHOICES)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    description = models.CharField(max_length=512, blank=True)
    # Tagged reference to the originating business object; resolved via ledger.Reference
    reference_type = models.CharField(max_length=16, choices=REFERENCE_CHOICES, blank=True)
    reference_id = models.PositiveBigIntegerField(null=True, blank=True)
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='ledger_transactions'
    )
    is_modification = models.BooleanField(default=False)
    original_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    modification_reason = models.CharField(max_length=512, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'ledger_transactions'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['reference_type', 'reference_id']),
            models.Index(fields=['account', 'created_at']),
            models.Index(fields=['category']),
        ]

    def __str__(self):
        return f'{self.transaction_type} {self.amount} {self.category} ({self.account_id})'

    @property
    def signed_amount(self):
        return self.amount if self.transaction_type == self.TYPE_CREDIT else -self.amount


class LedgerPosting(models.Model):
    """
    Outbox row for ledger side effects of a committed business write.
    Written in the same transaction as the write; failed rows are the dead-letter log.
    """
    KIND_PAYMENT_COMPLETED = 'payment_completed'
    KIND_PAYMENT_REVERSED = 'payment_reversed'
    KIND_INVOICE_REVENUE = 'invoice_revenue'
    KIND_CHOICES = [
        (KIND_PAYMENT_COMPLETED, 'Payment completed'),
        (KIND_PAYMENT_REVERSED, 'Payment reversed'),
        (KIND_INVOICE_REVENUE, 'Invoice revenue'),
    ]
    STATUS_PENDING = 'pending'
    STATUS_DONE = 'done'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [(STATUS_PENDING, 'Pending'), (STATUS_DONE, 'Done'), (STATUS_FAILED, 'Failed')]

    kind = models.CharField(max_length=32, choices=KIND_CHOICES)
    # Plain id: the booking may be deleted by the time the posting is applied
    booking_id = models.PositiveBigIntegerField()
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    transaction = models.ForeignKey(
        Transaction, on_delete=models.SET_NULL, null=True, blank=True, related_name='postings'
    )
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'ledger_postings'
        ordering = ['created_at', 'id']
        indexes = [models.Index(fields=['status']), models.Index(fields=['booking_id'])]

    def __str__(self):
        return f'{self.kind} booking#{self.booking_id} {self.amount} ({self.status})'


class ExpenseType(models.Model):
    """Reference data: expense categories (utilities, supplies, maintenance)."""
    name = models.CharField(max_length=64, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'expense_types'
        ordering = ['name']

    def __str__(self):
        return self.name


class Expense(models.Model):
    """Outflow against a user's bank account. Approved expenses are deducted from the account and the main account."""
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]
    expense_type = models.ForeignKey(ExpenseType, on_delete=models.PROTECT, null=True, blank=True, related_name='expenses')
    title = models.CharField(max_length=256)
    description = models.TextField(blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    expense_date = models.DateField(default=timezone.localdate)
    account = models.ForeignKey(BankAccount, on_delete=models.PROTECT, null=True, blank=True, related_name='expenses')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    receipt_number = models.CharField(max_length=64, blank=True)
    notes = models.TextField(blank=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='recorded_expenses'
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='approved_expenses'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'expenses'
        ordering = ['-created_at']
        indexes = [models.Index(fields=['status']), models.Index(fields=['created_at'])]

    def __str__(self):
        return f'{self.title} {self.amount} ({self.status})'
