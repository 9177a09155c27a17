from decimal import Decimal
from unittest import mock

import pytest

from core.exceptions import ConflictError, InsufficientBalance, MultipleMainAccounts, NotFound
from finance import expenses, ledger
from finance.models import BankAccount, Expense, Transaction


@pytest.fixture
def funded_account(admin_user, main_account):
    account = ledger.get_or_create_user_account(admin_user)
    ledger.manual_deposit(account, Decimal('1000'))
    account.refresh_from_db()
    return account


@pytest.mark.django_db
class TestMainAccount:
    def test_created_once(self, db):
        first = ledger.get_or_create_main_account()
        second = ledger.get_or_create_main_account()
        assert first.pk == second.pk
        assert BankAccount.objects.filter(is_main_account=True).count() == 1

    def test_missing_main_account(self, db):
        with pytest.raises(NotFound):
            ledger.get_main_account()

    def test_more_than_one_is_internal_error(self, main_account):
        extra = BankAccount(account_name='Shadow', account_type=BankAccount.TYPE_MAIN, is_main_account=True)
        with mock.patch('finance.ledger._main_accounts', return_value=[main_account, extra]):
            with pytest.raises(MultipleMainAccounts) as exc:
                ledger.get_main_account()
        assert exc.value.status_code == 500

    def test_second_main_account_rejected(self, main_account):
        with pytest.raises(ConflictError):
            ledger.create_account('Another Main', account_type=BankAccount.TYPE_MAIN)


@pytest.mark.django_db
class TestPostings:
    def test_balance_matches_log(self, main_account):
        ledger.on_payment_completed(1, Decimal('500'))
        ledger.on_payment_completed(1, Decimal('250.50'))
        ledger.on_payment_reversed(1, Decimal('100'))
        main_account.refresh_from_db()
        assert main_account.balance == Decimal('650.50')
        assert ledger.reconcile_balances() == []

    def test_zero_posting_rejected(self, main_account):
        from core.exceptions import InvalidAmount
        with pytest.raises(InvalidAmount):
            ledger.on_payment_completed(1, Decimal('0'))

    def test_reconcile_reports_and_fixes_drift(self, main_account):
        ledger.on_payment_completed(1, Decimal('300'))
        BankAccount.objects.filter(pk=main_account.pk).update(balance=Decimal('999'))
        drift = ledger.reconcile_balances()
        assert drift[0]['drift'] == Decimal('699.00')
        ledger.reconcile_balances(fix=True)
        main_account.refresh_from_db()
        assert main_account.balance == Decimal('300.00')

    def test_revenue_category_follows_largest_component(self, main_account):
        txn = ledger.add_revenue_to_main_account(
            7, Decimal('900'), {'accommodation': '200', 'extra_charges': '600', 'taxes': '100'},
        )
        assert txn.category == Transaction.OTHER_SERVICES_REVENUE
        assert ledger.Reference.of(txn) == ledger.Reference(Transaction.REF_BOOKING, 7)

    def test_transfer(self, funded_account, main_account):
        ledger.transfer_between_accounts(funded_account, main_account, Decimal('400'))
        funded_account.refresh_from_db()
        main_account.refresh_from_db()
        assert funded_account.balance == Decimal('600.00')
        assert main_account.balance == Decimal('400.00')

    def test_withdrawal_cannot_overdraw(self, funded_account):
        with pytest.raises(InsufficientBalance):
            ledger.manual_withdrawal(funded_account, Decimal('1000.01'))
        funded_account.refresh_from_db()
        assert funded_account.balance == Decimal('1000.00')


@pytest.mark.django_db
class TestExpenses:
    def test_manager_expense_debits_both_accounts(self, admin_user, funded_account, main_account):
        expense = expenses.record_expense(user=admin_user, title='Laundry', amount=Decimal('250'))
        assert expense.status == Expense.STATUS_APPROVED
        funded_account.refresh_from_db()
        main_account.refresh_from_db()
        assert funded_account.balance == Decimal('750.00')
        assert main_account.balance == Decimal('-250.00')
        debits = Transaction.objects.filter(reference_type=Transaction.REF_EXPENSE, reference_id=expense.pk)
        assert sorted(debits.values_list('account_id', flat=True)) == sorted([funded_account.pk, main_account.pk])

    def test_insufficient_balance_writes_nothing(self, admin_user, funded_account):
        with pytest.raises(InsufficientBalance):
            expenses.record_expense(user=admin_user, title='Generator', amount=Decimal('5000'))
        assert not Expense.objects.exists()
        funded_account.refresh_from_db()
        assert funded_account.balance == Decimal('1000.00')

    def test_staff_expense_waits_for_approval(self, staff_user, admin_user, main_account):
        expense = expenses.record_expense(user=staff_user, title='Taxi', amount=Decimal('40'))
        assert expense.status == Expense.STATUS_PENDING
        account = ledger.get_or_create_user_account(staff_user)
        ledger.manual_deposit(account, Decimal('100'))
        expenses.approve_expense(expense.pk, admin_user)
        account.refresh_from_db()
        assert account.balance == Decimal('60.00')
        with pytest.raises(ConflictError):
            expenses.reject_expense(expense.pk, admin_user)

    def test_requires_main_account(self, admin_user):
        with pytest.raises(NotFound):
            expenses.record_expense(user=admin_user, title='Paint', amount=Decimal('10'))
