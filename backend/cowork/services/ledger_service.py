# backend/cowork/services/ledger_service.py
"""
Ledger service: the only writer of member balances.

Every balance change appends exactly one ``Transaction`` row and adjusts
``Member.balance`` by that row's signed amount, inside the same database
transaction and under a row lock on the member. The ledger therefore always
reconciles: ``sum(signed amounts) == balance``.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from ..core.exceptions import (
    EnumDecodeError,
    InsufficientBalanceException,
    ValidationException,
    not_found,
)
from ..models.base_enum import decode_enum
from ..models.member import Member
from ..models.transaction import Transaction, TransactionType
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

CENT = Decimal("0.01")
MIN_DEPOSIT = CENT

Amount = Union[Decimal, int, str, float]


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(amount: Amount) -> Decimal:
    """
    Validate a ledger amount: positive, finite, at most two decimal places.

    Raises:
        ValidationException: If the amount is malformed
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationException(
            f"Invalid amount: {amount!r}", code="INVALID_AMOUNT", details={"amount": str(amount)}
        ) from exc

    if not value.is_finite() or value <= 0:
        raise ValidationException(
            "Amount must be greater than zero",
            code="INVALID_AMOUNT",
            details={"amount": str(amount)},
        )
    if value != value.quantize(CENT):
        raise ValidationException(
            "Amount must have at most two decimal places",
            code="INVALID_AMOUNT",
            details={"amount": str(amount)},
        )
    return value.quantize(CENT)


class LedgerService(BaseService):
    """Appends ledger entries and keeps member balances in lockstep."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.member_repository = RepositoryFactory.create_member_repository(db)
        self.transaction_repository = RepositoryFactory.create_transaction_repository(db)

    @BaseService.measure_operation("ledger_charge")
    def charge(
        self,
        member_id: str,
        amount: Amount,
        transaction_type: Union[TransactionType, str],
        description: Optional[str] = None,
        *,
        use_transaction: bool = True,
    ) -> Transaction:
        """
        Append one ledger entry and apply it to the member balance.

        Debits (payment, withdrawal) are re-checked against the locked balance
        and never take it below zero.

        Raises:
            ValidationException: Malformed amount or unknown transaction kind
            NotFoundException: Unknown member
            InsufficientBalanceException: Debit exceeds the balance
        """
        try:
            kind = decode_enum(TransactionType, transaction_type)
        except EnumDecodeError as exc:
            raise ValidationException(
                str(exc), code="INVALID_TRANSACTION_TYPE", details={"value": str(transaction_type)}
            ) from exc
        value = parse_amount(amount)

        def _charge() -> Transaction:
            member = self.member_repository.get_for_update(member_id)
            if member is None:
                raise not_found("member", member_id)

            current = quantize_money(Decimal(member.balance))
            new_balance = current + kind.signed(value)
            if new_balance < 0:
                self.logger.info(
                    "Rejected %s of %s for member %s: balance %s", kind.value, value, member_id, current
                )
                raise InsufficientBalanceException(required=value, available=current)

            entry = self.transaction_repository.append(member.id, value, kind, description)
            member.balance = new_balance
            self.member_repository.flush()

            prometheus_metrics.inc_ledger_transaction(kind.value)
            self.log_operation(
                "ledger_charge",
                member_id=member.id,
                transaction_id=entry.id,
                kind=kind.value,
                amount=str(value),
            )
            return entry

        if use_transaction:
            with self.transaction():
                return _charge()
        return _charge()

    def deposit(
        self,
        member_id: str,
        amount: Amount,
        description: Optional[str] = None,
        *,
        use_transaction: bool = True,
    ) -> Transaction:
        """Top up a member balance."""
        value = parse_amount(amount)
        if value < MIN_DEPOSIT:
            raise ValidationException(
                f"Minimum deposit is {MIN_DEPOSIT}", code="INVALID_AMOUNT", details={"amount": str(value)}
            )
        return self.charge(
            member_id,
            value,
            TransactionType.DEPOSIT,
            description or "Balance top-up",
            use_transaction=use_transaction,
        )

    def refund(
        self,
        member_id: str,
        amount: Amount,
        description: str,
        *,
        use_transaction: bool = True,
    ) -> Transaction:
        """Credit money back to a member."""
        return self.charge(
            member_id, amount, TransactionType.REFUND, description, use_transaction=use_transaction
        )

    def get_balance(self, member_id: str) -> Decimal:
        member = self._require_member(member_id)
        return quantize_money(Decimal(member.balance))

    def get_transactions(self, member_id: str) -> List[Transaction]:
        """Ledger entries for a member, newest first."""
        self._require_member(member_id)
        return self.transaction_repository.list_for_member(member_id)

    def compute_ledger_balance(self, member_id: str) -> Decimal:
        """Sum of signed ledger amounts for a member."""
        total = sum(
            (entry.signed_amount for entry in self.get_transactions(member_id)), Decimal("0")
        )
        return quantize_money(Decimal(total))

    @BaseService.measure_operation("ledger_verify_balance")
    def verify_balance(self, member_id: str) -> bool:
        """True when the stored balance equals the ledger sum."""
        stored = self.get_balance(member_id)
        computed = self.compute_ledger_balance(member_id)
        if stored != computed:
            self.logger.error(
                "Ledger mismatch for member %s: stored=%s computed=%s", member_id, stored, computed
            )
            return False
        return True

    def _require_member(self, member_id: str) -> Member:
        member = self.member_repository.get_by_id(member_id)
        if member is None:
            raise not_found("member", member_id)
        return member
