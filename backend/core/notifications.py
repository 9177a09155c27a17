"""Staff notifications. Best-effort: a failed notification never fails the caller."""
import logging

from django.db import transaction

logger = logging.getLogger(__name__)


def notify(kind: str, title: str, message: str = '', recipient=None, **data):
    """Create a Notification row; returns None when the write fails."""
    from core.models import Notification
    try:
        with transaction.atomic():
            return Notification.objects.create(
                kind=kind, title=title, message=message, recipient=recipient, data=data,
            )
    except Exception as e:
        logger.warning('Notification %s (%s) failed: %s', kind, data, e)
        return None
