"""Unit tests for credit scoring rules"""

import pytest
from datetime import datetime
from microlend.domain.exceptions import ValidationError
from microlend.domain.scoring import (
    adjust_credit_score,
    clamp_score,
    repayment_delta,
    risk_bucket,
    simulate_credit_action,
)

NOW = datetime(2025, 3, 1, 12, 0, 0)


class StubUser:
    """Minimal stand-in exposing what the scorer touches"""

    def __init__(self, credit_score: int):
        self.credit_score = credit_score
        self.credit_history = []

    def record_credit_change(self, **entry) -> None:
        self.credit_history.append(entry)


@pytest.mark.parametrize(
    "score, bucket",
    [(850, "low"), (750, "low"), (749, "medium"), (650, "medium"), (600, "medium"), (599, "high"), (300, "high")],
)
def test_risk_bucket_boundaries(score, bucket):
    assert risk_bucket(score) == bucket


def test_clamp_score():
    assert clamp_score(900) == 850
    assert clamp_score(120) == 300
    assert clamp_score(700) == 700


def test_adjust_credit_score_appends_history():
    user = StubUser(650)

    entry = adjust_credit_score(user, 5, "EMI paid on time", NOW)

    assert user.credit_score == 655
    assert user.credit_history == [entry]
    assert entry == {"recorded_at": NOW, "score": 655, "delta": 5, "reason": "EMI paid on time"}


def test_adjust_credit_score_clamps_at_ceiling():
    """Delta is recorded as requested, score stops at 850"""
    user = StubUser(848)

    adjust_credit_score(user, 5, "EMI paid on time", NOW)

    assert user.credit_score == 850
    assert user.credit_history[-1]["delta"] == 5
    assert user.credit_history[-1]["score"] == 850


def test_adjust_credit_score_clamps_at_floor():
    user = StubUser(302)

    adjust_credit_score(user, -30, "Simulated: Missed payment", NOW)

    assert user.credit_score == 300


def test_adjust_credit_score_history_is_ordered():
    user = StubUser(650)

    adjust_credit_score(user, -5, "Loan application rejected", NOW)
    adjust_credit_score(user, 3, "EMI paid (late)", NOW)

    assert [e["score"] for e in user.credit_history] == [645, 648]


def test_repayment_delta():
    assert repayment_delta(is_late=False) == (5, "EMI paid on time")
    assert repayment_delta(is_late=True) == (3, "EMI paid (late)")


def test_simulate_credit_action():
    user = StubUser(650)

    entry = simulate_credit_action(user, "loan_closed", NOW)

    assert entry["delta"] == 20
    assert user.credit_score == 670


def test_simulate_credit_action_unknown():
    user = StubUser(650)

    with pytest.raises(ValidationError):
        simulate_credit_action(user, "bribe_the_bureau", NOW)

    assert user.credit_history == []
