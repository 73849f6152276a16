from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    MethodNotAllowed,
    NotAuthenticated,
    NotFound,
    NotAcceptable,
    ParseError,
    PermissionDenied,
    Throttled,
    UnsupportedMediaType,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."


class InvalidRange(ValidationError):
    default_detail = "Closing meter cannot be less than opening meter."
    default_code = "invalid_range"


class MissingPump(ValidationError):
    default_detail = "A pump must be selected."
    default_code = "missing_pump"


class MissingProduct(ValidationError):
    default_detail = "The pump fuel type does not match exactly one product."
    default_code = "missing_product"


class PriceUnavailable(MissingProduct):
    default_detail = "No price is configured for this product at this station."
    default_code = "price_unavailable"


class Forbidden(PermissionDenied):
    default_detail = "You do not have access to the requested records."
    default_code = "forbidden"


class InvalidTransition(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This status change is not allowed."
    default_code = "invalid_transition"


class InconsistentWrite(APIException):
    """Raised when a sale and its pump meter update did not land together."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Sale and pump meter could not be updated together; manual reconciliation is required."
    default_code = "inconsistent_write"

    def __init__(self, detail=None, code=None, *, sale_payload=None):
        super().__init__(detail, code)
        self.sale_payload = sale_payload or {}


class TamperedOrInvalid(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Document fingerprint does not match; the document is tampered or invalid."
    default_code = "tampered_or_invalid"


# Subclasses must come before their bases; the first isinstance match wins.
EXCEPTION_CODE_MAP: dict[type[Exception], str] = {
    InvalidRange: "invalid_range",
    PriceUnavailable: "price_unavailable",
    MissingPump: "missing_pump",
    MissingProduct: "missing_product",
    Forbidden: "forbidden",
    InvalidTransition: "invalid_transition",
    InconsistentWrite: "inconsistent_write",
    TamperedOrInvalid: "tampered_or_invalid",
    ValidationError: "validation_error",
    NotAuthenticated: "not_authenticated",
    AuthenticationFailed: "authentication_failed",
    PermissionDenied: "permission_denied",
    NotFound: "not_found",
    MethodNotAllowed: "method_not_allowed",
    NotAcceptable: "not_acceptable",
    UnsupportedMediaType: "unsupported_media_type",
    ParseError: "parse_error",
    Throttled: "throttled",
}

DOMAIN_VALIDATION_ERRORS = (InvalidRange, MissingPump, MissingProduct)


def build_error_envelope(
    *,
    code: str,
    message: str,
    errors: Any,
    status_code: int,
) -> dict[str, Any]:
    return {
        "code": code,
        "message": message,
        "errors": errors,
        "status": status_code,
    }


def error_response(
    *,
    code: str,
    message: str,
    errors: Any = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> Response:
    return Response(
        build_error_envelope(
            code=code,
            message=message,
            errors=errors,
            status_code=status_code,
        ),
        status=status_code,
    )


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    response = drf_exception_handler(exc, context)

    if response is None:
        view_name = context.get("view").__class__.__name__ if context.get("view") else "unknown"
        logger.exception("Unhandled API exception in %s", view_name)
        return error_response(
            code="internal_server_error",
            message=GENERIC_SERVER_ERROR_MESSAGE,
            errors=None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    status_code = response.status_code
    errors = _normalize_errors(response.data)
    if isinstance(exc, InconsistentWrite):
        errors = {"sale": exc.sale_payload}
    message = _build_message(exc, response.data)
    code = _build_code(exc)

    response.data = build_error_envelope(
        code=code,
        message=message,
        errors=errors,
        status_code=status_code,
    )
    return response


def _build_code(exc: Exception) -> str:
    for exception_type, stable_code in EXCEPTION_CODE_MAP.items():
        if isinstance(exc, exception_type):
            return stable_code

    if isinstance(exc, APIException):
        return str(getattr(exc, "default_code", "api_error"))

    return "internal_server_error"


def _build_message(exc: Exception, data: Any) -> str:
    if isinstance(exc, DOMAIN_VALIDATION_ERRORS):
        return _first_detail(exc.detail) or str(exc.default_detail)

    if isinstance(exc, ValidationError):
        return "Validation failed."

    detail = None
    if isinstance(data, Mapping):
        detail = data.get("detail")
    elif isinstance(data, str):
        detail = data

    if detail:
        return str(detail)

    if isinstance(exc, Throttled):
        return "Request was throttled."

    if isinstance(exc, APIException):
        return str(getattr(exc, "detail", "Request failed."))

    return GENERIC_SERVER_ERROR_MESSAGE


def _first_detail(detail: Any) -> str | None:
    if isinstance(detail, Mapping):
        for value in detail.values():
            found = _first_detail(value)
            if found:
                return found
        return None
    if isinstance(detail, Sequence) and not isinstance(detail, str):
        for value in detail:
            found = _first_detail(value)
            if found:
                return found
        return None
    return str(detail) if detail else None


def _normalize_errors(data: Any) -> Any:
    if isinstance(data, Mapping):
        if set(data.keys()) == {"detail"}:
            return None
        return data

    if isinstance(data, Sequence) and not isinstance(data, str):
        return data

    return None
