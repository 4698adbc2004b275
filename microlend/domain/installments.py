"""Amortization schedule generation for monthly EMI repayment"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from microlend.domain.models import Installment
from microlend.domain.money import ZERO, round_money
from microlend.utils.date_utils import add_months


def generate_schedule(
    principal: Decimal,
    monthly_rate: Decimal,
    tenure_months: int,
    emi: Decimal,
    start: datetime,
    total_payable: Optional[Decimal] = None,
) -> List[Installment]:
    """
    Generate a reducing-balance amortization table.

    Requirements:
    - One installment per month, due start + i months (1-indexed)
    - Interest on the running balance, principal = emi - interest,
      each rounded to cents at every step
    - Balance never drops below zero
    - When total_payable is given, the last installment's amount absorbs
      the difference so the schedule sums to exactly total_payable
    - Every row satisfies principal + interest == amount; the last balance
      is forced to exactly 0

    Args:
        principal: Loan amount
        monthly_rate: r = annual rate / 12 / 100
        tenure_months: Number of installments
        emi: Rounded installment amount from calculate_emi
        start: Funding timestamp; first due date is one month later
        total_payable: Rounded total from calculate_emi

    Example:
        P=12000, r=0.01, n=12, emi=1066.19
        #1 interest 120.00, principal 946.19, balance 11053.81
        ...
        #12 balance 0.00
    """
    if tenure_months <= 0:
        return []

    last_amount = emi
    if total_payable is not None:
        last_amount = round_money(total_payable - emi * (tenure_months - 1))

    balance = principal
    installments = []

    for i in range(1, tenure_months + 1):
        amount = last_amount if i == tenure_months else emi
        interest = round_money(balance * monthly_rate)
        principal_part = round_money(amount - interest)
        balance = max(ZERO, round_money(balance - principal_part))

        installments.append(
            Installment(
                installment_no=i,
                due_date=add_months(start, i),
                amount=amount,
                principal=principal_part,
                interest=interest,
                balance=balance,
            )
        )

    installments[-1].balance = ZERO

    return installments
