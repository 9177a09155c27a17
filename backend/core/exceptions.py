"""
Domain errors and the API exception handler.
Every error leaves the API as {"error": "..."}; field validation adds "details".
"""
import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

ValidationError = exceptions.ValidationError


class DomainError(exceptions.APIException):
    """Business rule violation raised by services; rendered as a 400 unless overridden."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request could not be processed.'
    default_code = 'domain_error'


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class ConflictError(DomainError):
    """Duplicate name/SKU/barcode or a resource already taken."""
    default_detail = 'Conflicting record.'
    default_code = 'conflict'


class NoAvailability(ConflictError):
    default_detail = 'No rooms available for the selected room type.'
    default_code = 'no_availability'


class InvalidAmount(DomainError):
    default_detail = 'Invalid amount.'
    default_code = 'invalid_amount'


class InsufficientBalance(DomainError):
    default_detail = 'Insufficient balance.'
    default_code = 'insufficient_balance'


class InsufficientStock(DomainError):
    default_detail = 'Insufficient stock.'
    default_code = 'insufficient_stock'


class MaximumStockExceeded(DomainError):
    default_detail = 'Maximum stock level exceeded.'
    default_code = 'maximum_stock_exceeded'


class InactiveItem(DomainError):
    default_detail = 'Item is inactive.'
    default_code = 'inactive_item'


class InternalError(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Internal server error.'
    default_code = 'internal_error'


class MultipleMainAccounts(InternalError):
    default_detail = 'More than one active main account exists.'
    default_code = 'multiple_main_accounts'


def _message(data):
    if isinstance(data, dict):
        data = data.get('detail', data)
    if isinstance(data, (list, tuple)) and data:
        data = data[0]
    return str(data)


def api_exception_handler(exc, context):
    """REST_FRAMEWORK['EXCEPTION_HANDLER']: flatten DRF errors into {"error": ...} bodies."""
    response = exception_handler(exc, context)
    view = context.get('view')
    if response is None:
        logger.error(
            'Unhandled error in %s: %s', view.__class__.__name__ if view else '-', exc, exc_info=exc
        )
        return Response({'error': 'Internal server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        response.status_code = status.HTTP_401_UNAUTHORIZED
        response.data = {'error': 'Unauthorized'}
    elif isinstance(exc, exceptions.ValidationError):
        response.data = {'error': 'Validation failed', 'details': response.data}
    else:
        if response.status_code >= 500:
            logger.error('%s in %s: %s', exc.__class__.__name__, view.__class__.__name__ if view else '-', exc)
        response.data = {'error': _message(response.data)}
    return response
