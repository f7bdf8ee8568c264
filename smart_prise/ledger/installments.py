"""
Installment Accounting Engine

Paying a commitment moves paid_amount forward by one fixed step:

    step      = total_value / installments_count
    paid'     = min(paid + step, total_value)
    remaining = total_value - paid'
    completed = remaining <= 0

A completed commitment cannot be paid again; the call is a no-op and
the UI shows the action disabled.
"""

from decimal import Decimal
from typing import Iterable, Optional

from smart_prise.models.ledger import Commitment

# Remaining amounts below this fraction of one step are division residue
RESIDUE_TOLERANCE = Decimal("1e-9")


def can_pay_installment(commitment: Commitment) -> bool:
    return not commitment.completed


def pay_installment(commitment: Commitment) -> Commitment:
    """
    Apply one installment and return the new commitment value.

    Returns the same object untouched when the commitment is completed.
    """
    if not can_pay_installment(commitment):
        return commitment

    paid = min(
        commitment.paid_amount + commitment.installment_step,
        commitment.total_value,
    )
    # 1000 / 3 never sums back to 1000 exactly
    residue = commitment.installment_step * RESIDUE_TOLERANCE
    if commitment.total_value - paid < residue:
        paid = commitment.total_value

    return commitment.evolve(paid_amount=paid)


def replace_commitment(
    commitments: Iterable[Commitment],
    updated: Commitment,
) -> list[Commitment]:
    """Swap the commitment with updated.id for updated, keeping order."""
    return [updated if c.id == updated.id else c for c in commitments]


def delete_commitment(
    commitments: Iterable[Commitment],
    commitment_id: str,
) -> list[Commitment]:
    """Remove a commitment by id. Unknown ids are ignored."""
    return [c for c in commitments if c.id != commitment_id]


def find_commitment(
    commitments: Iterable[Commitment],
    commitment_id: str,
) -> Optional[Commitment]:
    return next((c for c in commitments if c.id == commitment_id), None)
