"""Ledger read models."""

from datetime import datetime
from typing import Optional

from ..models.transaction import TransactionType
from ._strict_base import StrictModel
from .base import Money


class LedgerEntry(StrictModel):
    """A ledger transaction with its signed effect on the balance."""

    transaction_id: str
    type: TransactionType
    amount: Money
    signed_amount: Money
    description: Optional[str] = None
    created_at: datetime
