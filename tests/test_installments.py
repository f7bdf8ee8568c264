"""Tests for installment accounting."""

from decimal import Decimal

import pytest

from smart_prise.ledger import (
    can_pay_installment,
    delete_commitment,
    find_commitment,
    pay_installment,
    replace_commitment,
)
from smart_prise.models.ledger import new_commitment


class TestPayInstallment:
    """One fixed step per payment, clamped at the total."""

    def test_first_installment(self):
        commitment = new_commitment("u1", "جمعيات", 1200, 12)
        paid = pay_installment(commitment)
        assert paid.paid_amount == Decimal("100")
        assert paid.remaining_amount == Decimal("1100")
        assert paid.completed is False

    def test_original_value_untouched(self):
        commitment = new_commitment("u1", "جمعيات", 1200, 12)
        pay_installment(commitment)
        assert commitment.paid_amount == Decimal("0")

    def test_twelve_installments_complete(self):
        commitment = new_commitment("u1", "جمعيات", 1200, 12)
        for _ in range(12):
            commitment = pay_installment(commitment)
        assert commitment.paid_amount == Decimal("1200")
        assert commitment.remaining_amount == Decimal("0")
        assert commitment.completed is True
        assert not can_pay_installment(commitment)

    def test_completed_is_noop(self):
        """A 13th payment returns the same value."""
        commitment = new_commitment("u1", "جمعيات", 1200, 12)
        for _ in range(12):
            commitment = pay_installment(commitment)
        assert pay_installment(commitment) is commitment

    def test_non_terminating_division_completes(self):
        commitment = new_commitment("u1", "اقساط بنك", 1000, 3)
        for _ in range(3):
            commitment = pay_installment(commitment)
        assert commitment.completed is True
        assert commitment.paid_amount == Decimal("1000")

    def test_sub_cent_steps_are_not_settled_early(self):
        commitment = new_commitment("u1", "جمعيات", Decimal("0.02"), 4)
        for _ in range(3):
            commitment = pay_installment(commitment)
        assert commitment.paid_amount == Decimal("0.015")
        assert commitment.completed is False

        commitment = pay_installment(commitment)
        assert commitment.paid_amount == Decimal("0.02")
        assert commitment.completed is True

    def test_partial_prepayment_not_settled_early(self):
        commitment = new_commitment("u1", "اقساط بنك", 1000, 3).evolve(paid_amount=Decimal("600"))
        paid = pay_installment(commitment)
        assert paid.completed is False
        assert paid.remaining_amount > Decimal("66")

    def test_paid_never_exceeds_total(self):
        commitment = new_commitment("u1", "جمعيات", 1000, 3).evolve(paid_amount=Decimal("900"))
        paid = pay_installment(commitment)
        assert paid.paid_amount == Decimal("1000")
        assert paid.completed

    def test_zero_total_is_already_completed(self):
        commitment = new_commitment("u1", "جمعيات", 0, 1)
        assert commitment.completed
        assert pay_installment(commitment) is commitment


class TestCommitmentCollection:
    """Replacing and deleting by id."""

    def test_replace_keeps_order(self):
        first = new_commitment("u1", "جمعيات", 100, 1)
        second = new_commitment("u1", "اقساط بنك", 200, 2)
        paid = pay_installment(second)
        assert replace_commitment([first, second], paid) == [first, paid]

    def test_delete(self):
        first = new_commitment("u1", "جمعيات", 100, 1)
        second = new_commitment("u1", "اقساط بنك", 200, 2)
        assert delete_commitment([first, second], first.id) == [second]

    def test_delete_unknown_is_idempotent(self):
        first = new_commitment("u1", "جمعيات", 100, 1)
        assert delete_commitment([first], "missing") == [first]

    def test_find(self):
        first = new_commitment("u1", "جمعيات", 100, 1)
        assert find_commitment([first], first.id) is first
        assert find_commitment([first], "missing") is None
