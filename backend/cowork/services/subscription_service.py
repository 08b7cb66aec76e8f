# backend/cowork/services/subscription_service.py
"""
Subscription accounting.

Owns subscription periods, minute pools and status transitions:
- issue / issue_with_payment: create a subscription, optionally paid from the
  member balance, and for fixed tariffs reserve the bound space for the whole
  period (the "fix booking")
- draw_down / return_minutes: move minutes out of and back into a pool
- sweep_expired: active subscriptions past their end date become expired
- cancel: optional refund capped at the original payment, cascading to all
  confirmed bookings paid by the subscription
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    AlreadyCancelledException,
    InsufficientMinutesException,
    NotAuthorizedException,
    RefundExceedsPaymentException,
    SpaceUnavailableException,
    SubscriptionNotEligibleException,
    TariffNotEligibleException,
    ValidationException,
    not_found,
)
from ..models.booking import Booking, BookingStatus, BookingType
from ..models.space import Space
from ..models.subscription import Subscription, SubscriptionStatus
from ..models.tariff import Tariff, TariffType
from ..models.transaction import Transaction, TransactionType
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .conflict_checker import ConflictChecker, translate_overlap_violation
from .ledger_service import Amount, LedgerService, parse_amount
from .settings_service import SettingsService


@dataclass(frozen=True)
class SubscriptionPurchase:
    """Result of buying a subscription."""

    subscription: Subscription
    payment: Optional[Transaction] = None
    fix_booking: Optional[Booking] = None


def subscription_payment_description(tariff: Tariff, start_date: date, end_date: date) -> str:
    return f'Subscription "{tariff.name}" {start_date:%d.%m.%Y}-{end_date:%d.%m.%Y}'


def subscription_refund_description(tariff: Tariff, start_date: date, end_date: date) -> str:
    return f'Refund for subscription "{tariff.name}" {start_date:%d.%m.%Y}-{end_date:%d.%m.%Y}'


def parse_refund_amount(amount: Optional[Amount]) -> Optional[Decimal]:
    """A zero refund means no refund; anything else must be a valid positive amount."""
    if amount is None:
        return None
    try:
        if Decimal(str(amount)) == 0:
            return None
    except InvalidOperation:
        pass
    return parse_amount(amount)


class SubscriptionService(BaseService):
    def __init__(
        self,
        db: Session,
        ledger_service: Optional[LedgerService] = None,
        settings_service: Optional[SettingsService] = None,
    ):
        super().__init__(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.member_repository = RepositoryFactory.create_member_repository(db)
        self.staff_repository = RepositoryFactory.create_staff_repository(db)
        self.tariff_repository = RepositoryFactory.create_tariff_repository(db)
        self.transaction_repository = RepositoryFactory.create_transaction_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.ledger_service = ledger_service or LedgerService(db)
        self.conflict_checker = ConflictChecker(db)
        self.settings_service = settings_service or SettingsService(db)

    # Issue

    @BaseService.measure_operation("issue_subscription")
    def issue(
        self,
        member_id: str,
        tariff_id: str,
        start_date: date,
        end_date: date,
        remaining_minutes: int,
        *,
        use_transaction: bool = True,
    ) -> Subscription:
        """
        Create an active subscription without payment.

        ``remaining_minutes == 0`` issues an unlimited pool.
        """
        if end_date < start_date:
            raise ValidationException(
                "Subscription end date must not be before its start date",
                code="INVALID_PERIOD",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        if remaining_minutes < 0:
            raise ValidationException(
                "Remaining minutes must not be negative",
                code="INVALID_MINUTES",
                details={"remaining_minutes": remaining_minutes},
            )

        def _issue() -> Subscription:
            if self.member_repository.get_by_id(member_id) is None:
                raise not_found("member", member_id)
            if self.tariff_repository.get_by_id(tariff_id) is None:
                raise not_found("tariff", tariff_id)

            subscription = self.subscription_repository.create(
                member_id=member_id,
                tariff_id=tariff_id,
                start_date=start_date,
                end_date=end_date,
                remaining_minutes=remaining_minutes,
                unlimited_minutes=remaining_minutes == 0,
                status=SubscriptionStatus.ACTIVE,
            )
            self.log_operation(
                "issue_subscription",
                subscription_id=subscription.id,
                member_id=member_id,
                tariff_id=tariff_id,
            )
            return subscription

        if use_transaction:
            with self.transaction():
                return _issue()
        return _issue()

    @BaseService.measure_operation("issue_subscription_with_payment")
    def issue_with_payment(
        self,
        member_id: str,
        tariff_id: str,
        start_date: Optional[date] = None,
        space_id: Optional[str] = None,
    ) -> SubscriptionPurchase:
        """
        Buy a subscription from the member balance.

        The period is ``[start_date, start_date + duration_days]`` and the
        pool is the tariff's included minutes. A fixed tariff also reserves
        one of its spaces for the whole period; that reservation competes
        with ordinary bookings under the same overlap rules.

        Raises:
            TariffNotEligibleException: Hourly or inactive tariff, or space
                not bound to the tariff
            InsufficientBalanceException: Balance below the tariff price
            SlotConflictException: The fixed space is taken in the period
        """
        with self.transaction():
            if self.member_repository.get_by_id(member_id) is None:
                raise not_found("member", member_id)
            tariff = self.tariff_repository.get_by_id(tariff_id)
            if tariff is None:
                raise not_found("tariff", tariff_id)
            if not tariff.is_active:
                raise TariffNotEligibleException(
                    "Tariff is not active", details={"tariff_id": tariff_id}
                )
            if tariff.type == TariffType.HOURLY:
                raise TariffNotEligibleException(
                    "Hourly tariffs are paid per booking and cannot be subscribed to",
                    details={"tariff_id": tariff_id, "type": tariff.type.value},
                )

            period_start = start_date or self.settings_service.current_date()
            period_end = period_start + timedelta(days=tariff.duration_days)

            # Space row before member row, the same lock order as create_booking
            fix_space = None
            if tariff.type == TariffType.FIXED:
                fix_space = self._lock_fix_space(tariff, space_id)

            subscription = self.issue(
                member_id,
                tariff.id,
                period_start,
                period_end,
                tariff.included_minutes,
                use_transaction=False,
            )

            payment = None
            if tariff.price > 0:
                payment = self.ledger_service.charge(
                    member_id,
                    Decimal(tariff.price),
                    TransactionType.PAYMENT,
                    subscription_payment_description(tariff, period_start, period_end),
                    use_transaction=False,
                )
                self.transaction_repository.link_subscription(payment.id, subscription.id)

            fix_booking = None
            if fix_space is not None:
                fix_booking = self._create_fix_booking(member_id, subscription, fix_space)

        return SubscriptionPurchase(
            subscription=subscription, payment=payment, fix_booking=fix_booking
        )

    def _lock_fix_space(self, tariff: Tariff, space_id: Optional[str]) -> Space:
        """Resolve the space a fixed tariff reserves and lock its row."""
        bound_space_ids = self.tariff_repository.get_space_ids(tariff.id)
        target_space_id = space_id
        if target_space_id is None and len(bound_space_ids) == 1:
            target_space_id = bound_space_ids[0]
        if target_space_id is None:
            raise ValidationException(
                "A space must be chosen for a fixed tariff",
                code="SPACE_REQUIRED",
                details={"tariff_id": tariff.id},
            )
        if bound_space_ids and target_space_id not in bound_space_ids:
            raise TariffNotEligibleException(
                "Tariff does not include this space",
                details={"tariff_id": tariff.id, "space_id": target_space_id},
            )

        space = self.conflict_checker.repository.lock_space(target_space_id)
        if space is None:
            raise not_found("space", target_space_id)
        if not space.is_bookable:
            raise SpaceUnavailableException(space.id, space.status.value)
        return space

    def _create_fix_booking(
        self, member_id: str, subscription: Subscription, space: Space
    ) -> Booking:
        start_time = datetime.combine(subscription.start_date, time.min)
        end_time = datetime.combine(subscription.end_date + timedelta(days=1), time.min)
        self.conflict_checker.ensure_slot_available(space.id, start_time, end_time)

        with translate_overlap_violation(space.id):
            booking = self.booking_repository.create(
                space_id=space.id,
                created_by=member_id,
                booking_type=BookingType.SUBSCRIPTION,
                start_time=start_time,
                end_time=end_time,
                status=BookingStatus.CONFIRMED,
            )
        self.booking_repository.link_subscription(booking.id, subscription.id)
        self.log_operation(
            "create_fix_booking",
            booking_id=booking.id,
            subscription_id=subscription.id,
            space_id=space.id,
        )
        return booking

    # Minute pool

    @BaseService.measure_operation("draw_down_minutes")
    def draw_down(
        self, subscription_id: str, minutes: int, *, use_transaction: bool = True
    ) -> Subscription:
        """
        Take ``minutes`` from a subscription pool.

        Unlimited pools are never decremented.

        Raises:
            SubscriptionNotEligibleException: Subscription is not active
            InsufficientMinutesException: Finite pool smaller than ``minutes``
        """
        if minutes <= 0:
            raise ValidationException(
                "Minutes must be positive", code="INVALID_MINUTES", details={"minutes": minutes}
            )

        def _draw_down() -> Subscription:
            subscription = self._get_locked(subscription_id)
            if subscription.status != SubscriptionStatus.ACTIVE:
                raise SubscriptionNotEligibleException(
                    "Subscription is not active",
                    details={"subscription_id": subscription_id, "status": subscription.status.value},
                )
            if subscription.unlimited_minutes:
                return subscription
            if subscription.remaining_minutes < minutes:
                raise InsufficientMinutesException(
                    required=minutes, remaining=subscription.remaining_minutes
                )
            subscription.remaining_minutes -= minutes
            self.subscription_repository.flush()
            return subscription

        if use_transaction:
            with self.transaction():
                return _draw_down()
        return _draw_down()

    @BaseService.measure_operation("return_minutes")
    def return_minutes(
        self, subscription_id: str, minutes: int, *, use_transaction: bool = True
    ) -> Subscription:
        """Credit drawn minutes back to a finite pool; unlimited pools are unchanged."""

        def _return() -> Subscription:
            subscription = self._get_locked(subscription_id)
            if minutes > 0 and not subscription.unlimited_minutes:
                subscription.remaining_minutes += minutes
                self.subscription_repository.flush()
            return subscription

        if use_transaction:
            with self.transaction():
                return _return()
        return _return()

    # Status transitions

    @BaseService.measure_operation("sweep_expired_subscriptions")
    def sweep_expired(self, today: Optional[date] = None, *, use_transaction: bool = True) -> int:
        """
        Expire active subscriptions whose end date has passed. Idempotent.

        Returns:
            Number of subscriptions expired by this call
        """
        as_of = today or self.settings_service.current_date()

        def _sweep() -> int:
            expired = self.subscription_repository.expire_ended(as_of)
            if expired:
                self.logger.info(f"Expired {expired} subscriptions ending before {as_of}")
            return expired

        if use_transaction:
            with self.transaction():
                return _sweep()
        return _sweep()

    @BaseService.measure_operation("cancel_subscription")
    def cancel(
        self,
        subscription_id: str,
        refund_amount: Optional[Amount] = None,
        staff_id: Optional[str] = None,
        *,
        as_of: Optional[datetime] = None,
        use_transaction: bool = True,
    ) -> Subscription:
        """
        Cancel an active or expired subscription.

        A positive ``refund_amount`` is credited to the member and may not
        exceed the payment that bought the subscription. Every confirmed
        booking paid by the subscription is cancelled in the same transaction.

        Raises:
            AlreadyCancelledException: Subscription already cancelled
            RefundExceedsPaymentException: Refund larger than the payment
        """
        refund = parse_refund_amount(refund_amount)
        now = as_of or self.settings_service.current_time()

        def _cancel() -> Subscription:
            if staff_id is not None:
                self._require_staff(staff_id)

            subscription = self._get_locked(subscription_id)
            if subscription.status == SubscriptionStatus.CANCELLED:
                raise AlreadyCancelledException("subscription", subscription_id)

            if refund is not None:
                payment = self.transaction_repository.get_subscription_payment(subscription.id)
                paid = Decimal(payment.amount) if payment is not None else Decimal("0.00")
                if refund > paid:
                    raise RefundExceedsPaymentException(requested=refund, paid=paid)
                self.ledger_service.refund(
                    subscription.member_id,
                    refund,
                    subscription_refund_description(
                        subscription.tariff, subscription.start_date, subscription.end_date
                    ),
                    use_transaction=False,
                )

            subscription.status = SubscriptionStatus.CANCELLED
            subscription.cancelled_at = now
            self.subscription_repository.flush()

            booking_ids = self.subscription_repository.get_confirmed_booking_ids(subscription.id)
            cancelled = self.booking_repository.mark_cancelled(booking_ids, now)

            self.log_operation(
                "cancel_subscription",
                subscription_id=subscription.id,
                refund=str(refund) if refund is not None else None,
                cancelled_bookings=cancelled,
                staff_id=staff_id,
            )
            return subscription

        if use_transaction:
            with self.transaction():
                return _cancel()
        return _cancel()

    # Reads

    def get_subscription(self, subscription_id: str) -> Subscription:
        subscription = self.subscription_repository.get_by_id(subscription_id)
        if subscription is None:
            raise not_found("subscription", subscription_id)
        return subscription

    def list_for_member(self, member_id: str) -> List[Subscription]:
        """Subscriptions of a member, newest first, after the lazy expiry sweep."""
        self.sweep_expired()
        return self.subscription_repository.list_for_member(member_id)

    def _get_locked(self, subscription_id: str) -> Subscription:
        subscription = self.subscription_repository.get_for_update(subscription_id)
        if subscription is None:
            raise not_found("subscription", subscription_id)
        return subscription

    def _require_staff(self, staff_id: str) -> None:
        if self.staff_repository.get_active_staff(staff_id) is None:
            raise NotAuthorizedException(
                "Only active staff can perform this action", details={"staff_id": staff_id}
            )
