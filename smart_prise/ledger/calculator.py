"""
Derived Ledger Calculator

Pure functions over the current in-memory collections.

DESIGN DECISION: Nothing here is cached. Every call recomputes from the
collections it is given, so a snapshot that arrived from another client
is reflected the next time the numbers are asked for.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from pydantic import BaseModel

from smart_prise.models.ledger import (
    Commitment,
    Expense,
    LedgerDocument,
    MonthlyRecord,
)


class LedgerSummary(BaseModel):
    """Numbers the presentation layer shows above the ledger."""

    salary: Decimal
    active_expense_total: Decimal
    balance: Decimal
    commitments_total: Decimal
    commitments_remaining: Decimal
    has_due_today: bool

    @property
    def is_overdrawn(self) -> bool:
        """Negative balance is a valid state, shown in red."""
        return self.balance < 0


def active_expense_total(expenses: Iterable[Expense]) -> Decimal:
    """Sum of value over unpaid expenses."""
    return sum(
        (expense.value for expense in expenses if not expense.paid),
        Decimal("0"),
    )


def balance(salary: Decimal, active_total: Decimal) -> Decimal:
    """Salary minus the active expense total. May be negative."""
    return salary - active_total


def commitment_totals(commitments: Iterable[Commitment]) -> tuple[Decimal, Decimal]:
    """
    Total value and remaining amount across all commitments.

    Completed commitments are included in both sums.
    """
    total = Decimal("0")
    remaining = Decimal("0")
    for commitment in commitments:
        total += commitment.total_value
        remaining += commitment.remaining_amount
    return total, remaining


def has_due_today(
    expenses: Iterable[Expense],
    commitments: Iterable[Commitment],
    today: date,
) -> bool:
    """True if an unpaid expense or open commitment falls due today."""
    if any(not e.paid and e.due_date == today for e in expenses):
        return True
    return any(
        not c.completed and c.due_date == today
        for c in commitments
    )


def record_balance(record: MonthlyRecord) -> Decimal:
    """What was left of the salary in an archived month."""
    return balance(record.salary, record.total_expenses)


def summarize(ledger: LedgerDocument, today: date) -> LedgerSummary:
    """Compute every derived value for one ledger."""
    active = active_expense_total(ledger.expenses)
    total, remaining = commitment_totals(ledger.commitments)
    return LedgerSummary(
        salary=ledger.salary,
        active_expense_total=active,
        balance=balance(ledger.salary, active),
        commitments_total=total,
        commitments_remaining=remaining,
        has_due_today=has_due_today(ledger.expenses, ledger.commitments, today),
    )
