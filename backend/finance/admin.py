from django.contrib import admin
from .models import TaxSettings, Tax, BankAccount, Transaction, LedgerPosting, ExpenseType, Expense


@admin.register(TaxSettings)
class TaxSettingsAdmin(admin.ModelAdmin):
    list_display = ['gst_percentage', 'service_tax_percentage', 'tax_enabled', 'updated_at']


@admin.register(Tax)
class TaxAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'percentage', 'is_active']


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    list_display = ['account_name', 'account_type', 'owner', 'balance', 'is_main_account', 'is_active']
    list_filter = ['account_type', 'is_active']
    readonly_fields = ['balance']


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ['id', 'account', 'transaction_type', 'category', 'amount', 'reference_type',
                    'reference_id', 'is_modification', 'created_at']
    list_filter = ['transaction_type', 'category', 'is_modification']


@admin.register(LedgerPosting)
class LedgerPostingAdmin(admin.ModelAdmin):
    list_display = ['id', 'kind', 'booking_id', 'amount', 'status', 'attempts', 'created_at', 'processed_at']
    list_filter = ['status', 'kind']


@admin.register(ExpenseType)
class ExpenseTypeAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active']


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ['title', 'expense_type', 'amount', 'expense_date', 'status', 'recorded_by']
    list_filter = ['status', 'expense_type']
