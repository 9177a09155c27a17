"""Expense recording and approval. Approval deducts from the recorder's account and the main account."""
import logging

from django.db import transaction
from django.utils import timezone

from core.exceptions import ConflictError, NotFound
from core.notifications import notify
from . import ledger
from .models import Expense

logger = logging.getLogger(__name__)


def record_expense(*, user, title, amount, expense_type=None, description='', expense_date=None,
                   receipt_number='', notes='', deduct_from_user=None) -> Expense:
    """
    Managers may charge another user's account and are approved immediately;
    other users' expenses wait for approval. Balance is checked before anything is written.
    """
    auto_approve = user.is_admin_or_owner
    target = deduct_from_user if (auto_approve and deduct_from_user) else user
    account = ledger.get_or_create_user_account(target)
    ledger.get_main_account()
    if auto_approve:
        ledger.ensure_sufficient_balance(account, amount)

    with transaction.atomic():
        expense = Expense.objects.create(
            expense_type=expense_type,
            title=title,
            description=description or '',
            amount=amount,
            expense_date=expense_date or timezone.localdate(),
            account=account,
            receipt_number=receipt_number or '',
            notes=notes or '',
            recorded_by=user,
            status=Expense.STATUS_APPROVED if auto_approve else Expense.STATUS_PENDING,
            approved_by=user if auto_approve else None,
            approved_at=timezone.now() if auto_approve else None,
        )
        if auto_approve:
            ledger.deduct_expense(expense, account, processed_by=user)
    logger.info('Expense #%s recorded by %s (%s, %s)', expense.pk, user.pk, expense.amount, expense.status)
    notify('expense', 'Expense recorded', f'{expense.title}: {expense.amount} ({expense.get_status_display()})',
           expense_id=expense.pk)
    return expense


def approve_expense(expense_id, approver) -> Expense:
    with transaction.atomic():
        expense = Expense.objects.select_for_update().select_related('account').filter(pk=expense_id).first()
        if expense is None:
            raise NotFound('Expense not found.')
        if expense.status != Expense.STATUS_PENDING:
            raise ConflictError(f'Expense is already {expense.status}.')
        account = expense.account or ledger.get_or_create_user_account(expense.recorded_by)
        ledger.deduct_expense(expense, account, processed_by=approver)
        expense.account = account
        expense.status = Expense.STATUS_APPROVED
        expense.approved_by = approver
        expense.approved_at = timezone.now()
        expense.save(update_fields=['account', 'status', 'approved_by', 'approved_at'])
    logger.info('Expense #%s approved by %s', expense.pk, approver.pk)
    return expense


def reject_expense(expense_id, approver) -> Expense:
    expense = Expense.objects.filter(pk=expense_id).first()
    if expense is None:
        raise NotFound('Expense not found.')
    if expense.status != Expense.STATUS_PENDING:
        raise ConflictError(f'Expense is already {expense.status}.')
    expense.status = Expense.STATUS_REJECTED
    expense.approved_by = approver
    expense.approved_at = timezone.now()
    expense.save(update_fields=['status', 'approved_by', 'approved_at'])
    return expense
