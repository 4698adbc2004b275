"""Unit tests for amortization schedule generation"""

import pytest
from datetime import datetime
from decimal import Decimal
from microlend.domain.emi import calculate_emi
from microlend.domain.installments import generate_schedule

START = datetime(2025, 1, 15, 10, 0, 0)


def _schedule_for(principal, rate, tenure, start=START):
    quote = calculate_emi(principal, rate, tenure)
    return quote, generate_schedule(
        Decimal(principal), quote.monthly_rate, tenure, quote.emi, start, quote.total_payable
    )


def test_generate_schedule_reference_loan():
    """12000 @ 12% over 12 months"""
    quote, schedule = _schedule_for(12000, 12, 12)

    assert len(schedule) == 12
    assert [inst.installment_no for inst in schedule] == list(range(1, 13))

    first = schedule[0]
    assert first.interest == Decimal("120.00")
    assert first.principal == Decimal("946.19")
    assert first.balance == Decimal("11053.81")
    assert first.amount == Decimal("1066.19")
    assert first.status == "pending"

    assert schedule[-1].balance == Decimal("0.00")


def test_generate_schedule_monthly_due_dates():
    """Installment i is due i calendar months after funding"""
    _, schedule = _schedule_for(12000, 12, 12)

    assert schedule[0].due_date == datetime(2025, 2, 15, 10, 0, 0)
    assert schedule[1].due_date == datetime(2025, 3, 15, 10, 0, 0)
    assert schedule[11].due_date == datetime(2026, 1, 15, 10, 0, 0)


def test_generate_schedule_clamps_month_end():
    """Funding on Jan 31 -> Feb 28, Mar 31"""
    _, schedule = _schedule_for(1000, 12, 3, start=datetime(2025, 1, 31))

    assert schedule[0].due_date == datetime(2025, 2, 28)
    assert schedule[1].due_date == datetime(2025, 3, 31)
    assert schedule[2].due_date == datetime(2025, 4, 30)


def test_generate_schedule_last_installment_absorbs_rounding():
    """Installment amounts sum exactly to total payable"""
    quote, schedule = _schedule_for(12000, 12, 12)

    assert all(inst.amount == quote.emi for inst in schedule[:-1])
    assert sum(inst.amount for inst in schedule) == quote.total_payable


@pytest.mark.parametrize(
    "principal, rate, tenure",
    [
        (100, 1, 1),
        (5000, 18, 6),
        (12000, 12, 12),
        (75000, 9.5, 36),
        (500000, 50, 60),
        (2500, 0, 7),
    ],
)
def test_generate_schedule_principal_sums_to_loan(principal, rate, tenure):
    """Principal parts repay the loan within one cent per installment"""
    _, schedule = _schedule_for(principal, rate, tenure)

    total_principal = sum(inst.principal for inst in schedule)
    assert abs(total_principal - Decimal(principal)) <= Decimal("0.01") * tenure
    assert schedule[-1].balance == Decimal("0")
    assert all(inst.balance >= 0 for inst in schedule)


def test_generate_schedule_zero_rate():
    _, schedule = _schedule_for(1000, 0, 3)

    assert all(inst.interest == Decimal("0.00") for inst in schedule)
    assert [inst.amount for inst in schedule] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
    assert schedule[-1].balance == Decimal("0.00")


def test_generate_schedule_without_total_keeps_constant_amount():
    quote = calculate_emi(12000, 12, 12)
    schedule = generate_schedule(Decimal("12000"), quote.monthly_rate, 12, quote.emi, START)

    assert all(inst.amount == quote.emi for inst in schedule)


def test_generate_schedule_zero_tenure():
    assert generate_schedule(Decimal("1000"), Decimal("0.01"), 0, Decimal("0"), START) == []


@pytest.mark.parametrize(
    "principal, rate, tenure",
    [(12000, 12, 12), (75000, 9.5, 36), (500000, 50, 60), (1000, 0, 3)],
)
def test_generate_schedule_rows_balance(principal, rate, tenure):
    """Principal and interest make up each row's amount, last row included"""
    _, schedule = _schedule_for(principal, rate, tenure)

    for inst in schedule:
        assert inst.principal + inst.interest == inst.amount
