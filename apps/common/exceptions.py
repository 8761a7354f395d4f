import logging

from django.db import OperationalError
from django.db.models import ProtectedError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ValidationError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "La solicitud no es valida."
    default_code = "validation_error"

    def __init__(self, detail=None, code=None, fields=None):
        super().__init__(detail=detail, code=code)
        self.fields = fields or {}


class OverpaymentError(ValidationError):
    default_detail = "El pago excede el saldo pendiente de la venta."
    default_code = "overpayment"


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "La operacion entra en conflicto con el estado actual."
    default_code = "conflict"


class InvalidStateError(ConflictError):
    default_detail = "El registro no esta en un estado valido para esta operacion."
    default_code = "invalid_state"


class InsufficientStockError(ConflictError):
    default_detail = "No hay stock suficiente."
    default_code = "insufficient_stock"

    def __init__(self, detail=None, code=None, product_id=None, requested=None, available=None):
        super().__init__(detail=detail, code=code)
        self.product_id = product_id
        self.requested = requested
        self.available = available


class NotFoundError(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "El registro no existe."
    default_code = "not_found"


class TransientIOError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "El almacenamiento no esta disponible. Intenta de nuevo."
    default_code = "transient_io"


class InvariantViolation(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Se detecto una inconsistencia interna; la operacion fue cancelada."
    default_code = "invariant_violation"


def _translate(exc):
    if isinstance(exc, OperationalError):
        logger.warning("Storage unavailable: %s", exc)
        return TransientIOError()
    if isinstance(exc, Http404):
        return NotFoundError()
    if isinstance(exc, ProtectedError):
        return ConflictError("El registro tiene movimientos asociados y no se puede eliminar.")
    return exc


def api_exception_handler(exc, context):
    exc = _translate(exc)
    if isinstance(exc, InvariantViolation):
        logger.error("Invariant violation in %s: %s", context.get("view").__class__.__name__, exc.detail)

    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {}
    fields.update(getattr(exc, "fields", {}) or {})

    code = getattr(exc, "default_code", "error")
    if isinstance(exc, InsufficientStockError) and exc.product_id:
        fields.setdefault("product", str(exc.product_id))

    response.data = {
        "code": code,
        "detail": detail,
        "fields": fields,
    }
    return response
