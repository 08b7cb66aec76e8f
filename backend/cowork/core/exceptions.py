# backend/cowork/core/exceptions.py
"""
Domain-specific exceptions for the coworking booking engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to the HTTPException carrying this error's status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when the caller is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when the caller lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class InvalidSlotException(ValidationException):
    """Raised when a requested interval is malformed or off the slot grid."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_SLOT", details=details or {})


class SlotConflictException(ConflictException):
    """Raised when a booking overlaps a confirmed booking on the same space."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="SLOT_CONFLICT",
            details=details or {},
        )


class InsufficientBalanceException(BusinessRuleException):
    """Raised when a debit would take a member balance below zero."""

    def __init__(self, required: Decimal, available: Decimal):
        super().__init__(
            message="Insufficient balance to complete the payment",
            code="INSUFFICIENT_BALANCE",
            details={"required": str(required), "available": str(available)},
        )


class InsufficientMinutesException(BusinessRuleException):
    """Raised when a finite subscription pool cannot cover a booking."""

    def __init__(self, required: int, remaining: int):
        super().__init__(
            message=f"Subscription has {remaining} minutes left, {required} required",
            code="INSUFFICIENT_MINUTES",
            details={"required": required, "remaining": remaining},
        )


class SubscriptionNotEligibleException(BusinessRuleException):
    """Raised when a subscription cannot pay for the requested booking."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message, code="SUBSCRIPTION_NOT_ELIGIBLE", details=details or {}
        )


class TariffNotEligibleException(BusinessRuleException):
    """Raised when a tariff is inactive or of the wrong kind for the operation."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="TARIFF_NOT_ELIGIBLE", details=details or {})


class NotAuthorizedException(ForbiddenException):
    """Raised when the acting member or staff may not perform the operation."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="NOT_AUTHORIZED", details=details or {})


class AlreadyCancelledException(ConflictException):
    """Raised when cancelling something that is already cancelled."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity.capitalize()} is already cancelled",
            code="ALREADY_CANCELLED",
            details={"entity": entity, "id": entity_id},
        )


class RefundExceedsPaymentException(BusinessRuleException):
    """Raised when a refund is larger than the payment it reverses."""

    def __init__(self, requested: Decimal, paid: Decimal):
        super().__init__(
            message="Refund amount exceeds the original payment",
            code="REFUND_EXCEEDS_PAYMENT",
            details={"requested": str(requested), "paid": str(paid)},
        )


class SpaceUnavailableException(BusinessRuleException):
    """Raised when a space is under maintenance."""

    def __init__(self, space_id: str, space_status: str):
        super().__init__(
            message="Space is not available for booking",
            code="SPACE_UNAVAILABLE",
            details={"space_id": space_id, "status": space_status},
        )


class TariffInUseException(ConflictException):
    """Raised when a tariff change is blocked by existing subscriptions."""

    def __init__(self, tariff_id: str, subscriptions: int):
        super().__init__(
            message="Tariff is referenced by subscriptions",
            code="TARIFF_IN_USE",
            details={"tariff_id": tariff_id, "subscriptions": subscriptions},
        )


class EnumDecodeError(ValueError):
    """Raised when a stored or submitted enum value is not recognised."""

    def __init__(self, enum_name: str, value: Any):
        self.enum_name = enum_name
        self.value = value
        super().__init__(f"Unknown {enum_name} value: {value!r}")


def not_found(entity: str, entity_id: Any) -> NotFoundException:
    """Build a NotFoundException with a ``<ENTITY>_NOT_FOUND`` code."""
    return NotFoundException(
        message=f"{entity.capitalize()} not found",
        code=f"{entity.upper()}_NOT_FOUND",
        details={"id": entity_id},
    )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
