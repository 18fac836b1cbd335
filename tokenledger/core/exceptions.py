from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    retryable = False

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ValidationError(AppError):
    """Bad input shape or range; ``details.field`` names the offending input."""

    def __init__(self, message: str, field: str | None = None, code: str = "VALIDATION_ERROR"):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            code=code,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class InvalidAmountError(ValidationError):
    def __init__(self, message: str = "Amount must be a positive integer"):
        super().__init__(message, field="amount", code="INVALID_AMOUNT")


class InvalidMessageError(ValidationError):
    def __init__(self, message: str = "Message must be between 1 and 500 characters"):
        super().__init__(message, field="message", code="INVALID_MESSAGE")


class ConflictError(AppError):
    def __init__(
        self,
        message: str = "Conflict",
        code: str = "CONFLICT",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code=code, status_code=status.HTTP_409_CONFLICT, details=details)


class InsufficientFundsError(ConflictError):
    def __init__(self, required: int | None = None, current: int | None = None):
        details: dict[str, Any] = {"reason": "insufficient_funds"}
        if required is not None:
            details["required"] = required
        if current is not None:
            details["current"] = current
        super().__init__("Insufficient token balance", code="INSUFFICIENT_FUNDS", details=details)


class SelfTransferError(ConflictError):
    def __init__(self):
        super().__init__(
            "Cannot send tokens to yourself",
            code="SELF_TRANSFER",
            details={"reason": "self_transfer"},
        )


class RewardUnavailableError(ConflictError):
    def __init__(self, message: str = "This reward is no longer available", reason: str = "inactive"):
        super().__init__(message, code="REWARD_UNAVAILABLE", details={"reason": reason})


class ConcurrencyConflictError(AppError):
    """An atomic unit lost its race; retried internally before it reaches a caller."""

    retryable = True

    def __init__(self, message: str = "Concurrent update conflict, please retry"):
        super().__init__(
            message,
            code="CONCURRENCY_CONFLICT",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"retryable": True},
        )


class StoreUnavailableError(AppError):
    retryable = True

    def __init__(self, message: str = "Store unavailable, please retry"):
        super().__init__(
            message,
            code="STORE_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"retryable": True},
        )


class MailNotConfiguredError(AppError):
    def __init__(self, message: str = "Feedback recipient email is not configured"):
        super().__init__(
            message,
            code="MAIL_NOT_CONFIGURED",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class MailDeliveryError(AppError):
    retryable = True

    def __init__(self, message: str = "Could not deliver email, please retry"):
        super().__init__(
            message,
            code="MAIL_DELIVERY_FAILED",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"retryable": True},
        )


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    headers = {"Retry-After": "1"} if exc.retryable else None
    return ORJSONResponse(status_code=exc.status_code, content=body, headers=headers)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": exc.errors()},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from tokenledger.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
