# backend/cowork/repositories/transaction_repository.py
"""
Ledger repository.

Transactions are append-only: this repository exposes inserts, link-table
writes and reads, never updates or deletes.
"""

from decimal import Decimal
import logging
from typing import List, Optional, cast

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import OneOff, transaction_one_offs
from ..models.subscription import transaction_subscriptions
from ..models.transaction import Transaction, TransactionType
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TransactionRepository(BaseRepository[Transaction]):
    def __init__(self, db: Session):
        super().__init__(db, Transaction)

    def append(
        self,
        member_id: str,
        amount: Decimal,
        transaction_type: TransactionType,
        description: Optional[str] = None,
    ) -> Transaction:
        """Insert one ledger entry."""
        return self.create(
            member_id=member_id,
            amount=amount,
            type=transaction_type,
            description=description,
        )

    def list_for_member(self, member_id: str) -> List[Transaction]:
        """All entries for a member, newest first."""
        try:
            return cast(
                List[Transaction],
                self.db.query(Transaction)
                .filter(Transaction.member_id == member_id)
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing transactions for {member_id}: {str(e)}")
            raise RepositoryException(f"Failed to list transactions: {str(e)}")

    # Subscription payment links

    def link_subscription(self, transaction_id: str, subscription_id: str) -> None:
        try:
            self.db.execute(
                insert(transaction_subscriptions).values(
                    transaction_id=transaction_id, subscription_id=subscription_id
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error linking transaction {transaction_id}: {str(e)}")
            raise RepositoryException(f"Failed to link subscription payment: {str(e)}")

    def get_subscription_payment(self, subscription_id: str) -> Optional[Transaction]:
        """The payment transaction that bought a subscription, if any."""
        try:
            return cast(
                Optional[Transaction],
                self.db.query(Transaction)
                .join(
                    transaction_subscriptions,
                    transaction_subscriptions.c.transaction_id == Transaction.id,
                )
                .filter(
                    transaction_subscriptions.c.subscription_id == subscription_id,
                    Transaction.type == TransactionType.PAYMENT,
                )
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading payment for {subscription_id}: {str(e)}")
            raise RepositoryException(f"Failed to load subscription payment: {str(e)}")

    # One-off booking payment links

    def create_one_off(
        self, booking_id: str, member_id: str, tariff_id: str, quantity: int
    ) -> OneOff:
        try:
            one_off = OneOff(
                booking_id=booking_id, member_id=member_id, tariff_id=tariff_id, quantity=quantity
            )
            self.db.add(one_off)
            self.db.flush()
            return one_off
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating one-off for booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to create one-off: {str(e)}")

    def link_one_off(self, transaction_id: str, one_off_id: str) -> None:
        try:
            self.db.execute(
                insert(transaction_one_offs).values(
                    transaction_id=transaction_id, one_off_id=one_off_id
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error linking one-off {one_off_id}: {str(e)}")
            raise RepositoryException(f"Failed to link one-off payment: {str(e)}")

    def get_one_off_for_booking(self, booking_id: str) -> Optional[OneOff]:
        try:
            return cast(
                Optional[OneOff],
                self.db.execute(select(OneOff).where(OneOff.booking_id == booking_id))
                .scalars()
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading one-off for {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load one-off: {str(e)}")

    def get_one_off_payment(self, one_off_id: str) -> Optional[Transaction]:
        try:
            return cast(
                Optional[Transaction],
                self.db.query(Transaction)
                .join(
                    transaction_one_offs, transaction_one_offs.c.transaction_id == Transaction.id
                )
                .filter(transaction_one_offs.c.one_off_id == one_off_id)
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading payment for one-off {one_off_id}: {str(e)}")
            raise RepositoryException(f"Failed to load one-off payment: {str(e)}")
