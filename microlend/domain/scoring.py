"""Credit scoring rules - bounded score adjustments and risk buckets"""

from datetime import datetime
from typing import Any, Dict, Tuple

from microlend.config import settings
from microlend.domain.exceptions import ValidationError
from microlend.domain.models import RISK_HIGH, RISK_LOW, RISK_MEDIUM

# Deltas applied by the loan lifecycle
DELTA_LOAN_REJECTED = -5
DELTA_EMI_ON_TIME = 5
DELTA_EMI_LATE = 3

REASON_LOAN_REJECTED = "Loan application rejected"
REASON_EMI_ON_TIME = "EMI paid on time"
REASON_EMI_LATE = "EMI paid (late)"

# Demo simulator: action -> (delta, reason)
SIMULATED_ACTIONS: Dict[str, Tuple[int, str]] = {
    "on_time_payment": (5, "Simulated: On-time payment"),
    "late_payment": (-15, "Simulated: Late payment"),
    "missed_payment": (-30, "Simulated: Missed payment"),
    "new_loan": (-10, "Simulated: New loan inquiry"),
    "loan_closed": (20, "Simulated: Loan fully repaid"),
}


def clamp_score(score: int) -> int:
    """Keep a score inside the configured [300, 850] band"""
    return max(settings.credit_score_min, min(settings.credit_score_max, score))


def risk_bucket(credit_score: int) -> str:
    """
    Map a borrower's credit score to a coarse risk bucket.

    Score bands:
    - 750+:      low
    - 600 - 749: medium
    - < 600:     high
    """
    if credit_score >= 750:
        return RISK_LOW
    elif credit_score < 600:
        return RISK_HIGH
    return RISK_MEDIUM


def repayment_delta(is_late: bool) -> Tuple[int, str]:
    """Credit delta and reason for one paid installment"""
    if is_late:
        return DELTA_EMI_LATE, REASON_EMI_LATE
    return DELTA_EMI_ON_TIME, REASON_EMI_ON_TIME


def adjust_credit_score(user: Any, delta: int, reason: str, now: datetime) -> Dict[str, Any]:
    """
    Apply a score delta to a user and append the outcome to their history.

    The user only needs a mutable ``credit_score`` and an appendable
    ``credit_history`` collection whose items are built by
    ``user.record_credit_change``. History is append-only.

    Returns the history entry fields that were recorded.
    """
    new_score = clamp_score(user.credit_score + delta)
    entry = {"recorded_at": now, "score": new_score, "delta": delta, "reason": reason}
    user.record_credit_change(**entry)
    user.credit_score = new_score
    return entry


def simulate_credit_action(user: Any, action: str, now: datetime) -> Dict[str, Any]:
    """Apply one of the demo simulator actions to a user's score"""
    try:
        delta, reason = SIMULATED_ACTIONS[action]
    except KeyError:
        raise ValidationError(f"Invalid action: {action}")
    return adjust_credit_score(user, delta, reason, now)
