"""EMI calculation under reducing-balance amortization"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from microlend.config import settings
from microlend.domain.exceptions import ValidationError
from microlend.domain.models import EMIQuote
from microlend.domain.money import Numeric, round_money, to_decimal

RATE_PLACES = Decimal("0.01")


def monthly_rate(annual_rate: Decimal) -> Decimal:
    """Annual percentage -> monthly fraction (12% -> 0.01)"""
    return annual_rate / 12 / 100


def calculate_emi(principal: Numeric, annual_rate: Numeric, tenure_months: int) -> EMIQuote:
    """
    Compute the equated monthly installment for a loan.

    Formula:
    - r = R / 12 / 100
    - r == 0: emi = P / n
    - else:   emi = P * r * (1 + r)^n / ((1 + r)^n - 1)

    total_payable is derived from the unrounded EMI, so it can differ from
    round(emi) * n by a few cents. The schedule's last installment absorbs
    that difference.

    Raises:
        ValidationError: P or n non-positive, R negative, or non-finite input

    Example:
        P=12000, R=12, n=12 -> emi 1066.19
    """
    p = to_decimal(principal, "principal")
    rate = to_decimal(annual_rate, "interest_rate")
    if isinstance(tenure_months, bool) or not isinstance(tenure_months, int):
        raise ValidationError("tenure must be a whole number of months")

    if p <= 0:
        raise ValidationError("principal must be positive")
    if rate < 0:
        raise ValidationError("interest_rate must not be negative")
    if tenure_months <= 0:
        raise ValidationError("tenure must be positive")

    r = monthly_rate(rate)
    n = tenure_months

    if r == 0:
        raw_emi = p / n
    else:
        growth = (1 + r) ** n
        raw_emi = p * r * growth / (growth - 1)

    total_payable = round_money(raw_emi * n)
    return EMIQuote(
        emi=round_money(raw_emi),
        total_payable=total_payable,
        total_interest=round_money(total_payable - p),
        monthly_rate=r,
    )


def validate_loan_terms(amount: Numeric, interest_rate: Numeric, tenure: int) -> tuple[Decimal, Decimal, int]:
    """
    Check application terms against configured bounds, returning normalized values.

    The rate is rounded to 2 places before anything is quoted from it, since
    that is the precision the loan row keeps and funding rebuilds the
    schedule from the stored rate.
    """
    p = to_decimal(amount, "amount")
    rate = to_decimal(interest_rate, "interest_rate").quantize(RATE_PLACES, rounding=ROUND_HALF_UP)

    if not settings.loan_min_amount <= p <= settings.loan_max_amount:
        raise ValidationError(
            f"amount must be between {settings.loan_min_amount} and {settings.loan_max_amount}"
        )
    if not settings.loan_min_rate <= rate <= settings.loan_max_rate:
        raise ValidationError(
            f"interest_rate must be between {settings.loan_min_rate} and {settings.loan_max_rate}"
        )
    if isinstance(tenure, bool) or not isinstance(tenure, int):
        raise ValidationError("tenure must be a whole number of months")
    if not settings.loan_min_tenure <= tenure <= settings.loan_max_tenure:
        raise ValidationError(
            f"tenure must be between {settings.loan_min_tenure} and {settings.loan_max_tenure} months"
        )

    return round_money(p), rate, tenure


def loan_progress(paid_amount: Decimal, total_payable: Optional[Decimal]) -> int:
    """Percentage of the payable amount already repaid"""
    if not total_payable:
        return 0
    return int((paid_amount / total_payable * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
