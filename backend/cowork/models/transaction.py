# backend/cowork/models/transaction.py
"""
Append-only ledger of member balance movements.

Amounts are stored positive; the sign is implied by the kind. The running sum
of signed amounts for a member always equals ``Member.balance``.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base
from .base_enum import create_safe_enum

if TYPE_CHECKING:
    from .member import Member


class TransactionType(str, Enum):
    """Kinds of ledger entries."""

    DEPOSIT = "deposit"
    PAYMENT = "payment"
    REFUND = "refund"
    BONUS = "bonus"
    WITHDRAWAL = "withdrawal"

    @property
    def is_credit(self) -> bool:
        return self in CREDIT_TRANSACTION_TYPES

    def signed(self, amount: Decimal) -> Decimal:
        """Return ``amount`` with the sign this kind applies to the balance."""
        return amount if self.is_credit else -amount


CREDIT_TRANSACTION_TYPES = frozenset(
    {TransactionType.DEPOSIT, TransactionType.REFUND, TransactionType.BONUS}
)


class Transaction(Base):
    """One immutable ledger entry."""

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    member_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        create_safe_enum(TransactionType, "transaction_type"), nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    member: Mapped["Member"] = relationship("Member", back_populates="transactions")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("idx_transactions_member_created", "member_id", "created_at"),
    )

    @property
    def signed_amount(self) -> Decimal:
        return self.type.signed(self.amount)

    def __repr__(self) -> str:
        return f"<Transaction {self.id} {self.type} {self.amount} member={self.member_id}>"
