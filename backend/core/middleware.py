"""Audit log middleware: views flag financial actions, the middleware persists them after the response."""
import logging
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)


def audit(request, action: str, model_name: str = '', object_id='', **details):
    """Flag the current request for an AuditLog entry (booking/invoice/payment deletes, amendments)."""
    user = getattr(request, 'user', None)
    request = getattr(request, '_request', request)
    request._audit_user = user
    request._audit_action = action
    request._audit_model = model_name
    request._audit_object_id = object_id
    request._audit_details = details


class AuditLogMiddleware(MiddlewareMixin):
    """Write one AuditLog per flagged request that completed without a server error."""
    def process_request(self, request):
        request._audit_action = None
        request._audit_model = None
        request._audit_object_id = None
        request._audit_details = {}
        return None

    def process_response(self, request, response):
        action = getattr(request, '_audit_action', None)
        user = getattr(request, 'user', None)
        if not action or response.status_code >= 400:
            return response
        if user is None or not user.is_authenticated:
            # JWT auth happens in the view, so the DRF request carries the user
            user = getattr(request, '_audit_user', None)
        if user is None:
            return response
        try:
            from core.models import AuditLog
            AuditLog.objects.create(
                user=user,
                action=action,
                model_name=request._audit_model or '',
                object_id=str(request._audit_object_id or ''),
                details=request._audit_details or {},
                ip_address=self._get_client_ip(request),
            )
        except Exception as e:
            logger.warning('AuditLog create failed for %s %s: %s', action, request._audit_object_id, e)
        return response

    @staticmethod
    def _get_client_ip(request):
        xff = request.META.get('HTTP_X_FORWARDED_FOR')
        if xff:
            return xff.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR')
