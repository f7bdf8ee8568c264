"""
Archival Engine

Closing a month turns the active expense list into an immutable
MonthlyRecord at the head of history and leaves the month empty.

The two effects are returned together in one LedgerDocument so the
caller can persist them in a single write; a client must never see the
record in history while the expenses are still active, or the reverse.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from babel.dates import format_date

from smart_prise.ledger.calculator import active_expense_total
from smart_prise.models.ledger import Expense, LedgerDocument, MonthlyRecord


def month_label(now: datetime, locale: str = "ar_EG") -> str:
    """Localized 'month year' label, e.g. 'يناير ٢٠٢٥' or 'January 2025'."""
    return format_date(now.date(), format="MMMM y", locale=locale)


def archive_month(
    salary: Decimal,
    expenses: Iterable[Expense],
    owner_id: str,
    now: datetime,
    locale: str = "ar_EG",
) -> MonthlyRecord:
    """
    Snapshot the given expenses into a new MonthlyRecord.

    An empty expense list is allowed and yields an empty record;
    callers decide whether archiving nothing makes sense.
    """
    expenses = list(expenses)
    return MonthlyRecord(
        month_name=month_label(now, locale),
        salary=salary,
        total_expenses=active_expense_total(expenses),
        expenses=[expense.model_copy(deep=True) for expense in expenses],
        archived_at=now,
        owner_id=owner_id,
    )


def apply_archive(ledger: LedgerDocument, record: MonthlyRecord) -> LedgerDocument:
    """Prepend the record to history and clear the active expenses."""
    return ledger.evolve(
        history=[record, *ledger.history],
        expenses=[],
    )
