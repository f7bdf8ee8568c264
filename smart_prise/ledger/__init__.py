"""Ledger engine: derived values, installments and month archival."""

from smart_prise.ledger.archive import apply_archive, archive_month, month_label
from smart_prise.ledger.calculator import (
    LedgerSummary,
    active_expense_total,
    balance,
    commitment_totals,
    has_due_today,
    record_balance,
    summarize,
)
from smart_prise.ledger.installments import (
    can_pay_installment,
    delete_commitment,
    find_commitment,
    pay_installment,
    replace_commitment,
)

__all__ = [
    "LedgerSummary",
    "active_expense_total",
    "apply_archive",
    "archive_month",
    "balance",
    "can_pay_installment",
    "commitment_totals",
    "delete_commitment",
    "find_commitment",
    "has_due_today",
    "month_label",
    "pay_installment",
    "record_balance",
    "replace_commitment",
    "summarize",
]
