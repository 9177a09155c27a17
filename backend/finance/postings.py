"""
Ledger posting outbox.
enqueue() runs inside the caller's transaction; process() runs after it commits.
A failed posting is logged and kept as 'failed' for process_ledger_postings to retry.
"""
import logging

from django.db import transaction
from django.utils import timezone

from . import ledger
from .models import LedgerPosting, Transaction

logger = logging.getLogger(__name__)


def enqueue(kind, booking_id, amount, requested_by=None, **payload) -> LedgerPosting:
    return LedgerPosting.objects.create(
        kind=kind,
        booking_id=booking_id,
        amount=amount,
        payload=payload,
        requested_by=requested_by,
    )


def _payment_reference(posting):
    payment_id = posting.payload.get('payment_id')
    if payment_id:
        return ledger.Reference(Transaction.REF_PAYMENT, payment_id)
    return None


def _apply(posting) -> Transaction:
    payload = posting.payload
    if posting.kind == LedgerPosting.KIND_PAYMENT_COMPLETED:
        return ledger.on_payment_completed(
            posting.booking_id, posting.amount,
            processed_by=posting.requested_by,
            reference=_payment_reference(posting),
            description=payload.get('description', ''),
        )
    if posting.kind == LedgerPosting.KIND_PAYMENT_REVERSED:
        return ledger.on_payment_reversed(
            posting.booking_id, posting.amount,
            processed_by=posting.requested_by,
            description=payload.get('description', ''),
        )
    if posting.kind == LedgerPosting.KIND_INVOICE_REVENUE:
        return ledger.add_revenue_to_main_account(
            posting.booking_id, posting.amount, payload.get('breakdown', {}),
            method=payload.get('method', ''),
            collected_by=posting.requested_by,
            description=payload.get('description', ''),
            reference=_payment_reference(posting),
        )
    raise ValueError(f'Unknown posting kind: {posting.kind}')


def process(posting_id) -> LedgerPosting:
    """Apply one posting exactly once. Never raises for ledger failures."""
    with transaction.atomic():
        posting = LedgerPosting.objects.select_for_update().select_related('requested_by').get(pk=posting_id)
        if posting.status == LedgerPosting.STATUS_DONE:
            return posting
        posting.attempts += 1
        try:
            with transaction.atomic():
                txn = _apply(posting)
        except Exception as e:
            logger.exception(
                'Ledger posting %s (%s, booking #%s, amount %s) failed on attempt %s',
                posting.pk, posting.kind, posting.booking_id, posting.amount, posting.attempts,
            )
            posting.status = LedgerPosting.STATUS_FAILED
            posting.last_error = f'{e.__class__.__name__}: {e}'
            posting.save(update_fields=['status', 'attempts', 'last_error'])
            return posting
        posting.status = LedgerPosting.STATUS_DONE
        posting.transaction = txn
        posting.last_error = ''
        posting.processed_at = timezone.now()
        posting.save(update_fields=['status', 'attempts', 'transaction', 'last_error', 'processed_at'])
    logger.info('Ledger posting %s (%s, booking #%s) applied', posting.pk, posting.kind, posting.booking_id)
    return posting


def process_pending(limit=None, max_attempts=None):
    """Retry pending and failed postings, oldest first. Returns (done, failed) counts."""
    qs = LedgerPosting.objects.exclude(status=LedgerPosting.STATUS_DONE)
    if max_attempts:
        qs = qs.filter(attempts__lt=max_attempts)
    ids = list(qs.values_list('pk', flat=True)[:limit] if limit else qs.values_list('pk', flat=True))
    done = failed = 0
    for pk in ids:
        if process(pk).status == LedgerPosting.STATUS_DONE:
            done += 1
        else:
            failed += 1
    return done, failed
