# backend/cowork/services/booking_service.py
"""
Booking Service

Orchestrates slot validation, overlap checking, subscription draw-down and
ledger charges into single atomic booking workflows:
- create_booking: pay per use (one_time) or from a subscription pool
- cancel_booking: member cancellation inside the cancellation window
- staff_cancel_booking: staff cancellation with optional minute/money return
- update_participants: replace the participant set

Every workflow runs in one database transaction; any failure leaves bookings,
subscriptions and the ledger exactly as they were.
"""

from datetime import datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from ..core.exceptions import (
    AlreadyCancelledException,
    BusinessRuleException,
    EnumDecodeError,
    InsufficientBalanceException,
    InsufficientMinutesException,
    NotAuthorizedException,
    SpaceUnavailableException,
    SubscriptionNotEligibleException,
    TariffNotEligibleException,
    ValidationException,
    not_found,
)
from ..core.timezone_utils import facility_now
from ..models.base_enum import decode_enum
from ..models.booking import Booking, BookingStatus, BookingType
from ..models.member import Member
from ..models.space import Space
from ..models.subscription import Subscription, SubscriptionStatus
from ..models.tariff import TariffType
from ..models.transaction import TransactionType
from ..repositories import RepositoryFactory
from .base import BaseService
from .conflict_checker import ConflictChecker, translate_overlap_violation
from .ledger_service import CENT, Amount, LedgerService
from .settings_service import SettingsService
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

MINUTES_PER_HOUR = Decimal(60)


def calculate_one_time_price(price_per_hour: Decimal, duration_minutes: int) -> Decimal:
    """Hourly price prorated by the minute, rounded half-up to cents."""
    return (Decimal(price_per_hour) * Decimal(duration_minutes) / MINUTES_PER_HOUR).quantize(
        CENT, rounding=ROUND_HALF_UP
    )


def _format_period(start_time: datetime, end_time: datetime) -> str:
    if start_time.date() == end_time.date():
        return f"{start_time:%d.%m.%Y %H:%M}-{end_time:%H:%M}"
    return f"{start_time:%d.%m.%Y %H:%M}-{end_time:%d.%m.%Y %H:%M}"


def booking_charge_description(space: Space, start_time: datetime, end_time: datetime) -> str:
    return f'Booking "{space.name}" {_format_period(start_time, end_time)}'


def booking_refund_description(space: Space, start_time: datetime, end_time: datetime) -> str:
    return f'Refund for booking "{space.name}" {_format_period(start_time, end_time)}'


def is_fix_booking(booking: Booking, subscription: Subscription) -> bool:
    """True when ``booking`` is the whole-period reservation of a fixed subscription."""
    return (
        subscription.tariff.type == TariffType.FIXED
        and booking.start_time == datetime.combine(subscription.start_date, time.min)
        and booking.end_time
        == datetime.combine(subscription.end_date + timedelta(days=1), time.min)
    )


class BookingService(BaseService):
    """Service layer for booking operations."""

    def __init__(
        self,
        db: Session,
        ledger_service: Optional[LedgerService] = None,
        subscription_service: Optional[SubscriptionService] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        settings_service: Optional[SettingsService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.member_repository = RepositoryFactory.create_member_repository(db)
        self.staff_repository = RepositoryFactory.create_staff_repository(db)
        self.tariff_repository = RepositoryFactory.create_tariff_repository(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.transaction_repository = RepositoryFactory.create_transaction_repository(db)
        self.ledger_service = ledger_service or LedgerService(db)
        self.settings_service = settings_service or SettingsService(db)
        self.subscription_service = subscription_service or SubscriptionService(
            db, ledger_service=self.ledger_service, settings_service=self.settings_service
        )
        self.conflict_checker = conflict_checker or ConflictChecker(db)

    # Create

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        member_id: str,
        space_id: str,
        start_time: datetime,
        end_time: datetime,
        booking_type: Union[BookingType, str],
        subscription_id: Optional[str] = None,
        tariff_id: Optional[str] = None,
        participant_ids: Iterable[str] = (),
    ) -> Booking:
        """
        Create a confirmed booking paid by a subscription or a one-off charge.

        Args:
            member_id: Creator of the booking
            space_id: Space to reserve
            start_time: Start, facility local, aligned to the slot grid
            end_time: End (exclusive)
            booking_type: ``one_time`` or ``subscription`` (any textual form)
            subscription_id: Paying subscription for subscription bookings
            tariff_id: Hourly tariff for one_time bookings
            participant_ids: Members invited to the booking

        Returns:
            The created booking

        Raises:
            InvalidSlotException, SlotConflictException, SpaceUnavailableException,
            SubscriptionNotEligibleException, InsufficientMinutesException,
            TariffNotEligibleException, InsufficientBalanceException, NotFoundException
        """
        kind = self._decode_booking_type(booking_type)
        requested_participants = list(participant_ids)

        with self.transaction():
            scheduling = self.settings_service.get_scheduling_settings()
            duration_minutes = self.conflict_checker.validate_slot(
                start_time, end_time, scheduling.slot_minutes
            )

            member = self.member_repository.get_by_id(member_id)
            if member is None:
                raise not_found("member", member_id)

            space = self._lock_bookable_space(space_id)
            self.conflict_checker.ensure_slot_available(space.id, start_time, end_time)

            if kind == BookingType.SUBSCRIPTION:
                booking = self._create_subscription_booking(
                    member, space, start_time, end_time, duration_minutes, subscription_id
                )
            else:
                booking = self._create_one_time_booking(
                    member, space, start_time, end_time, duration_minutes, tariff_id
                )

            participants = self._resolve_participants(member.id, requested_participants)
            self.booking_repository.add_participants(booking.id, participants)
            self.booking_repository.flush()
            self.db.expire(booking, ["participants"])

            self.log_operation(
                "create_booking",
                booking_id=booking.id,
                member_id=member.id,
                space_id=space.id,
                booking_type=kind.value,
                duration_minutes=duration_minutes,
            )

        return booking

    def _create_subscription_booking(
        self,
        member: Member,
        space: Space,
        start_time: datetime,
        end_time: datetime,
        duration_minutes: int,
        subscription_id: Optional[str],
    ) -> Booking:
        if not subscription_id:
            raise SubscriptionNotEligibleException("A subscription is required for this booking")

        subscription = self.subscription_repository.get_for_update(subscription_id)
        if (
            subscription is None
            or subscription.member_id != member.id
            or subscription.status != SubscriptionStatus.ACTIVE
        ):
            raise SubscriptionNotEligibleException(
                "Subscription is not an active subscription of this member",
                details={"subscription_id": subscription_id},
            )
        if not (subscription.start_date <= start_time.date() <= subscription.end_date):
            raise SubscriptionNotEligibleException(
                "Booking date is outside the subscription period",
                details={
                    "subscription_id": subscription.id,
                    "start_date": subscription.start_date.isoformat(),
                    "end_date": subscription.end_date.isoformat(),
                },
            )
        bound_space_ids = self.tariff_repository.get_space_ids(subscription.tariff_id)
        if bound_space_ids and space.id not in bound_space_ids:
            raise SubscriptionNotEligibleException(
                "Subscription does not cover this space",
                details={"subscription_id": subscription.id, "space_id": space.id},
            )
        if (
            not subscription.unlimited_minutes
            and subscription.remaining_minutes < duration_minutes
        ):
            raise InsufficientMinutesException(
                required=duration_minutes, remaining=subscription.remaining_minutes
            )

        booking = self._insert_booking(
            member.id, space.id, BookingType.SUBSCRIPTION, start_time, end_time
        )
        self.booking_repository.link_subscription(booking.id, subscription.id)
        self.subscription_service.draw_down(
            subscription.id, duration_minutes, use_transaction=False
        )
        return booking

    def _create_one_time_booking(
        self,
        member: Member,
        space: Space,
        start_time: datetime,
        end_time: datetime,
        duration_minutes: int,
        tariff_id: Optional[str],
    ) -> Booking:
        if not tariff_id:
            raise TariffNotEligibleException("A tariff is required for a one-time booking")
        tariff = self.tariff_repository.get_by_id(tariff_id)
        if tariff is None:
            raise not_found("tariff", tariff_id)
        if tariff.type != TariffType.HOURLY or not tariff.is_active:
            raise TariffNotEligibleException(
                "One-time bookings require an active hourly tariff",
                details={"tariff_id": tariff.id, "type": tariff.type.value},
            )
        bound_space_ids = self.tariff_repository.get_space_ids(tariff.id)
        if bound_space_ids and space.id not in bound_space_ids:
            raise TariffNotEligibleException(
                "Tariff does not include this space",
                details={"tariff_id": tariff.id, "space_id": space.id},
            )

        price = calculate_one_time_price(tariff.price, duration_minutes)
        balance = Decimal(member.balance)
        if balance < price:
            raise InsufficientBalanceException(required=price, available=balance)

        booking = self._insert_booking(
            member.id, space.id, BookingType.ONE_TIME, start_time, end_time
        )
        one_off = self.transaction_repository.create_one_off(
            booking_id=booking.id,
            member_id=member.id,
            tariff_id=tariff.id,
            quantity=duration_minutes,
        )
        if price > 0:
            payment = self.ledger_service.charge(
                member.id,
                price,
                TransactionType.PAYMENT,
                booking_charge_description(space, start_time, end_time),
                use_transaction=False,
            )
            self.transaction_repository.link_one_off(payment.id, one_off.id)
        return booking

    def _insert_booking(
        self,
        member_id: str,
        space_id: str,
        booking_type: BookingType,
        start_time: datetime,
        end_time: datetime,
    ) -> Booking:
        with translate_overlap_violation(space_id):
            return self.booking_repository.create(
                space_id=space_id,
                created_by=member_id,
                booking_type=booking_type,
                start_time=start_time,
                end_time=end_time,
                status=BookingStatus.CONFIRMED,
            )

    # Cancel

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self, booking_id: str, acting_member_id: str, *, as_of: Optional[datetime] = None
    ) -> Booking:
        """
        Member cancellation.

        Allowed for the creator or a participant of a confirmed booking that
        starts at least ``cancel_before_hours`` from now. Nothing is refunded
        and no minutes are returned. Fix bookings are cancelled by staff only.
        """
        with self.transaction():
            scheduling = self.settings_service.get_scheduling_settings()
            now = as_of or facility_now(scheduling.timezone)
            booking = self._get_booking(booking_id, for_update=True)
            if booking.status == BookingStatus.CANCELLED:
                raise AlreadyCancelledException("booking", booking.id)
            if not booking.involves(acting_member_id):
                raise NotAuthorizedException(
                    "Only the creator or a participant can cancel this booking",
                    details={"booking_id": booking.id},
                )

            subscription = self._get_paying_subscription(booking)
            if subscription is not None and is_fix_booking(booking, subscription):
                raise NotAuthorizedException(
                    "A fixed-space reservation can only be cancelled by staff",
                    details={"booking_id": booking.id},
                )

            if booking.status != BookingStatus.CONFIRMED or booking.start_time <= now:
                raise BusinessRuleException(
                    "Booking has already started or ended",
                    code="BOOKING_STARTED",
                    details={"booking_id": booking.id},
                )
            lead_time = booking.start_time - now
            if lead_time < timedelta(hours=scheduling.cancel_before_hours):
                raise BusinessRuleException(
                    f"Bookings can be cancelled at most {scheduling.cancel_before_hours} "
                    "hours before the start",
                    code="CANCELLATION_WINDOW_CLOSED",
                    details={
                        "booking_id": booking.id,
                        "cancel_before_hours": scheduling.cancel_before_hours,
                    },
                )

            self.booking_repository.mark_cancelled([booking.id], now)
            self.log_operation(
                "cancel_booking", booking_id=booking.id, member_id=acting_member_id
            )

        return booking

    @BaseService.measure_operation("staff_cancel_booking")
    def staff_cancel_booking(
        self,
        booking_id: str,
        staff_id: str,
        return_minutes: bool = True,
        return_money: bool = True,
        refund_amount: Optional[Amount] = None,
        *,
        as_of: Optional[datetime] = None,
    ) -> Booking:
        """
        Staff cancellation, without a time window.

        - fix booking: cancels the whole subscription (and so every booking it
          paid for) with an optional refund capped at the original payment;
          if the subscription is already cancelled only the booking is cancelled
        - other subscription bookings: drawn minutes go back to the pool
          when ``return_minutes``
        - one_time: the original charge is refunded when ``return_money``
        """
        now = as_of or self.settings_service.current_time()

        with self.transaction():
            self._require_staff(staff_id)
            booking = self._get_booking(booking_id, for_update=True)
            if booking.status == BookingStatus.CANCELLED:
                raise AlreadyCancelledException("booking", booking.id)

            subscription = self._get_paying_subscription(booking)
            if subscription is not None and is_fix_booking(booking, subscription):
                self._cancel_fix_booking(
                    booking, subscription, staff_id, refund_amount if return_money else None, now
                )
            else:
                if booking.status != BookingStatus.CONFIRMED:
                    raise BusinessRuleException(
                        "Booking is already completed",
                        code="BOOKING_COMPLETED",
                        details={"booking_id": booking.id},
                    )
                if subscription is not None:
                    if return_minutes:
                        self.subscription_service.return_minutes(
                            subscription.id, booking.duration_minutes, use_transaction=False
                        )
                elif return_money:
                    self._refund_one_time(booking)
                self.booking_repository.mark_cancelled([booking.id], now)

            self.log_operation(
                "staff_cancel_booking",
                booking_id=booking.id,
                staff_id=staff_id,
                return_minutes=return_minutes,
                return_money=return_money,
            )

        return booking

    def _cancel_fix_booking(
        self,
        booking: Booking,
        subscription: Subscription,
        staff_id: str,
        refund_amount: Optional[Amount],
        now: datetime,
    ) -> None:
        if subscription.status == SubscriptionStatus.CANCELLED:
            self.booking_repository.mark_cancelled([booking.id], now)
            return
        self.subscription_service.cancel(
            subscription.id,
            refund_amount,
            staff_id,
            as_of=now,
            use_transaction=False,
        )

    def _refund_one_time(self, booking: Booking) -> None:
        one_off = self.transaction_repository.get_one_off_for_booking(booking.id)
        if one_off is None:
            return
        payment = self.transaction_repository.get_one_off_payment(one_off.id)
        if payment is None or payment.type != TransactionType.PAYMENT:
            return
        self.ledger_service.refund(
            one_off.member_id,
            Decimal(payment.amount),
            booking_refund_description(booking.space, booking.start_time, booking.end_time),
            use_transaction=False,
        )

    # Participants

    @BaseService.measure_operation("update_participants")
    def update_participants(
        self,
        booking_id: str,
        participant_ids: Iterable[str],
        *,
        acting_member_id: Optional[str] = None,
        staff_id: Optional[str] = None,
        as_of: Optional[datetime] = None,
    ) -> Booking:
        """
        Replace the participant set of a confirmed booking that has not started.

        Members may only edit bookings they created; staff may edit any.
        """
        if (acting_member_id is None) == (staff_id is None):
            raise ValidationException(
                "Exactly one of acting member or staff must be given", code="INVALID_ACTOR"
            )
        now = as_of or self.settings_service.current_time()
        requested = list(participant_ids)

        with self.transaction():
            if staff_id is not None:
                self._require_staff(staff_id)
            booking = self._get_booking(booking_id, for_update=True)
            if acting_member_id is not None and booking.created_by != acting_member_id:
                raise NotAuthorizedException(
                    "Only the creator can change participants",
                    details={"booking_id": booking.id},
                )
            if booking.status != BookingStatus.CONFIRMED:
                raise BusinessRuleException(
                    "Booking is cancelled or completed",
                    code="BOOKING_NOT_CONFIRMED",
                    details={"booking_id": booking.id, "status": booking.status.value},
                )
            if booking.start_time <= now:
                raise BusinessRuleException(
                    "Booking has already started",
                    code="BOOKING_STARTED",
                    details={"booking_id": booking.id},
                )

            participants = self._resolve_participants(booking.created_by, requested)
            self.booking_repository.replace_participants(booking, participants)

        return booking

    # Reads

    def get_booking(self, booking_id: str) -> Booking:
        return self._get_booking(booking_id)

    # Helpers

    def _decode_booking_type(self, booking_type: Union[BookingType, str]) -> BookingType:
        try:
            return decode_enum(BookingType, booking_type)
        except EnumDecodeError as exc:
            raise ValidationException(
                str(exc), code="INVALID_BOOKING_TYPE", details={"value": str(booking_type)}
            ) from exc

    def _lock_bookable_space(self, space_id: str) -> Space:
        space = self.conflict_checker.repository.lock_space(space_id)
        if space is None:
            raise not_found("space", space_id)
        if not space.is_bookable:
            raise SpaceUnavailableException(space.id, space.status.value)
        return space

    def _get_booking(self, booking_id: str, for_update: bool = False) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id, for_update=for_update)
        if booking is None:
            raise not_found("booking", booking_id)
        return booking

    def _get_paying_subscription(self, booking: Booking) -> Optional[Subscription]:
        if booking.booking_type != BookingType.SUBSCRIPTION:
            return None
        subscription_id = self.booking_repository.get_subscription_id(booking.id)
        if subscription_id is None:
            return None
        return self.subscription_repository.get_by_id(subscription_id)

    def _resolve_participants(self, creator_id: str, requested: List[str]) -> List[str]:
        """De-duplicate, drop the creator, and require every participant to exist."""
        participants: List[str] = []
        for member_id in requested:
            if member_id != creator_id and member_id not in participants:
                participants.append(member_id)

        found = {member.id for member in self.member_repository.get_many(participants)}
        missing = [member_id for member_id in participants if member_id not in found]
        if missing:
            raise not_found("member", missing[0])
        return participants

    def _require_staff(self, staff_id: str) -> None:
        if self.staff_repository.get_active_staff(staff_id) is None:
            raise NotAuthorizedException(
                "Only active staff can perform this action", details={"staff_id": staff_id}
            )
