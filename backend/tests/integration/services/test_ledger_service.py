# backend/tests/integration/services/test_ledger_service.py
"""Integration tests for LedgerService against a real database."""

from decimal import Decimal

import pytest

from cowork.core.exceptions import (
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from cowork.models.member import Member
from cowork.models.transaction import Transaction, TransactionType


class TestCharge:
    def test_deposit_increases_balance(self, ledger, make_member):
        member = make_member()
        entry = ledger.deposit(member.id, "250.50")

        assert entry.type == TransactionType.DEPOSIT
        assert entry.description == "Balance top-up"
        assert ledger.get_balance(member.id) == Decimal("250.50")

    def test_each_kind_moves_balance_by_its_sign(self, ledger, make_member):
        member = make_member(balance="100.00")

        ledger.charge(member.id, "30.00", TransactionType.PAYMENT, "Coffee")
        ledger.charge(member.id, "10.00", TransactionType.WITHDRAWAL)
        ledger.charge(member.id, "5.00", TransactionType.BONUS, "Referral")
        ledger.charge(member.id, "15.00", TransactionType.REFUND, "Refund")

        assert ledger.get_balance(member.id) == Decimal("80.00")
        assert ledger.compute_ledger_balance(member.id) == Decimal("80.00")
        assert ledger.verify_balance(member.id)

    def test_textual_kind_is_accepted(self, ledger, make_member):
        member = make_member()
        entry = ledger.charge(member.id, "20", "Deposit")
        assert entry.type == TransactionType.DEPOSIT

    def test_unknown_kind(self, ledger, make_member):
        member = make_member(balance="100.00")
        with pytest.raises(ValidationException) as exc_info:
            ledger.charge(member.id, "10", "chargeback")
        assert exc_info.value.code == "INVALID_TRANSACTION_TYPE"

    def test_debit_may_empty_balance_exactly(self, ledger, make_member):
        member = make_member(balance="40.00")
        ledger.charge(member.id, "40.00", TransactionType.PAYMENT)
        assert ledger.get_balance(member.id) == Decimal("0.00")

    def test_overdraft_is_rejected_without_entry(self, ledger, make_member, db):
        member = make_member(balance="40.00")

        with pytest.raises(InsufficientBalanceException) as exc_info:
            ledger.charge(member.id, "40.01", TransactionType.WITHDRAWAL)

        assert exc_info.value.details == {"required": "40.01", "available": "40.00"}
        assert db.query(Transaction).filter_by(member_id=member.id).count() == 1
        assert ledger.get_balance(member.id) == Decimal("40.00")

    def test_unknown_member(self, ledger):
        with pytest.raises(NotFoundException):
            ledger.deposit("missing", "10")

    @pytest.mark.parametrize("amount", ["0", "-5", "1.001"])
    def test_invalid_amount(self, ledger, make_member, amount):
        member = make_member()
        with pytest.raises(ValidationException):
            ledger.deposit(member.id, amount)


class TestReconciliation:
    def test_transactions_belong_to_member(self, ledger, make_member):
        first = make_member(balance="10.00")
        second = make_member(balance="20.00")

        assert [t.amount for t in ledger.get_transactions(first.id)] == [Decimal("10.00")]
        assert [t.amount for t in ledger.get_transactions(second.id)] == [Decimal("20.00")]

    def test_signed_amounts(self, ledger, make_member):
        member = make_member(balance="100.00")
        ledger.charge(member.id, "30.00", TransactionType.PAYMENT)

        signed = sorted(t.signed_amount for t in ledger.get_transactions(member.id))
        assert signed == [Decimal("-30.00"), Decimal("100.00")]

    def test_tampered_balance_is_detected(self, ledger, make_member, db):
        member = make_member(balance="100.00")
        db.query(Member).filter_by(id=member.id).update({"balance": Decimal("150.00")})
        db.commit()
        db.expire_all()

        assert ledger.verify_balance(member.id) is False
