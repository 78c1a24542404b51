"""
Typed API errors and the DRF exception handler that renders them.

Every failure leaves the API as
    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""
import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

logger = logging.getLogger(__name__)


class MarketplaceError(exceptions.APIException):
    """Base class for business-rule and state-machine failures"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'BAD_REQUEST'
    default_detail = 'Request could not be processed'

    def __init__(self, message=None, details=None, code=None):
        self.code = code or self.default_code
        self.message = message or self.default_detail
        self.details = details
        super().__init__(detail=self.message, code=self.code)


class ValidationFailed(MarketplaceError):
    default_code = 'VALIDATION_ERROR'
    default_detail = 'Invalid input data'


class CartEmpty(MarketplaceError):
    default_code = 'CART_EMPTY'
    default_detail = 'Cart is empty'


class CartItemNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'CART_ITEM_NOT_FOUND'
    default_detail = 'Item not found in cart'


class ProductNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'PRODUCT_NOT_FOUND'
    default_detail = 'Product not found'


class OrderNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'ORDER_NOT_FOUND'
    default_detail = 'Order not found'


class NotPermitted(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'UNAUTHORIZED'
    default_detail = 'You are not allowed to perform this action'


class ProductUnavailable(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'PRODUCT_UNAVAILABLE'
    default_detail = 'Product is not available'


class InsufficientStock(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'INSUFFICIENT_STOCK'
    default_detail = 'Insufficient stock'


class CannotCancel(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'CANNOT_CANCEL'
    default_detail = 'Order cannot be cancelled at this stage'


class InvalidTransition(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'INVALID_TRANSITION'
    default_detail = 'Order status cannot be changed this way'


class ReturnWindowExpired(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'RETURN_WINDOW_EXPIRED'
    default_detail = 'Return window has expired'


class BankDetailsRequired(MarketplaceError):
    default_code = 'BANK_DETAILS_REQUIRED'
    default_detail = "Bank details are required when refund method is 'bank'"


def error_payload(code, message, details=None):
    error = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return {'success': False, 'error': error}


def _validation_details(detail):
    """Flatten DRF's nested error dict into [{'field', 'message'}] rows"""
    rows = []

    def walk(value, path):
        if isinstance(value, dict):
            for key, nested in value.items():
                walk(nested, path + [str(key)])
        elif isinstance(value, list):
            for index, nested in enumerate(value):
                if isinstance(nested, (dict, list)):
                    walk(nested, path + [str(index)])
                else:
                    walk(nested, path)
        else:
            rows.append({'field': '.'.join(path) or 'non_field_errors', 'message': str(value)})

    walk(detail, [])
    return rows


def api_exception_handler(exc, context):
    """DRF EXCEPTION_HANDLER producing the marketplace error envelope"""
    if isinstance(exc, MarketplaceError):
        set_rollback()
        return Response(error_payload(exc.code, exc.message, exc.details), status=exc.status_code)

    if isinstance(exc, (InvalidToken, TokenError)):
        set_rollback()
        return Response(error_payload('INVALID_TOKEN', 'Token is not valid'), status=status.HTTP_401_UNAUTHORIZED)

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.error(f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {exc}", exc_info=exc)
        set_rollback()
        return Response(
            error_payload('SERVER_ERROR', 'An unexpected error occurred'),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, exceptions.ValidationError):
        response.data = error_payload('VALIDATION_ERROR', 'Invalid input data', _validation_details(exc.detail))
    elif isinstance(exc, exceptions.NotAuthenticated):
        response.data = error_payload('NOT_AUTHENTICATED', 'Authentication credentials were not provided')
    elif isinstance(exc, exceptions.AuthenticationFailed):
        response.data = error_payload('INVALID_TOKEN', str(exc.detail))
    elif isinstance(exc, (exceptions.PermissionDenied, DjangoPermissionDenied)):
        response.data = error_payload('UNAUTHORIZED', str(getattr(exc, 'detail', exc)))
    elif isinstance(exc, (exceptions.NotFound, Http404)):
        response.data = error_payload('NOT_FOUND', 'Resource not found')
    else:
        code = getattr(exc, 'default_code', 'error').upper()
        response.data = error_payload(code, str(getattr(exc, 'detail', exc)))
    return response
