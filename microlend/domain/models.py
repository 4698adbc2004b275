"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

# User roles
ROLE_BORROWER = "borrower"
ROLE_LENDER = "lender"
ROLE_ADMIN = "admin"
ROLES = (ROLE_BORROWER, ROLE_LENDER, ROLE_ADMIN)

# Loan statuses. "funded" and "defaulted" are legal values that no in-core
# transition produces.
LOAN_PENDING = "pending"
LOAN_APPROVED = "approved"
LOAN_REJECTED = "rejected"
LOAN_FUNDED = "funded"
LOAN_ACTIVE = "active"
LOAN_COMPLETED = "completed"
LOAN_DEFAULTED = "defaulted"
LOAN_STATUSES = (
    LOAN_PENDING,
    LOAN_APPROVED,
    LOAN_REJECTED,
    LOAN_FUNDED,
    LOAN_ACTIVE,
    LOAN_COMPLETED,
    LOAN_DEFAULTED,
)

# Installment statuses
INSTALLMENT_PENDING = "pending"
INSTALLMENT_PAID = "paid"
INSTALLMENT_OVERDUE = "overdue"

# Ledger taxonomy
TXN_TOPUP = "topup"
TXN_LOAN_FUNDED = "loan_funded"
TXN_LOAN_RECEIVED = "loan_received"
TXN_EMI_PAID = "emi_paid"
TXN_EMI_RECEIVED = "emi_received"
TXN_REFUND = "refund"
TXN_TYPES = (TXN_TOPUP, TXN_LOAN_FUNDED, TXN_LOAN_RECEIVED, TXN_EMI_PAID, TXN_EMI_RECEIVED, TXN_REFUND)

DIRECTION_CREDIT = "credit"
DIRECTION_DEBIT = "debit"

# Risk buckets
RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"


@dataclass(frozen=True)
class EMIQuote:
    """Output of the EMI calculator"""

    emi: Decimal
    total_payable: Decimal
    total_interest: Decimal
    monthly_rate: Decimal


@dataclass
class Installment:
    """Single row of an amortization schedule"""

    installment_no: int
    due_date: datetime
    amount: Decimal
    principal: Decimal
    interest: Decimal
    balance: Decimal
    status: str = INSTALLMENT_PENDING
    paid_at: Optional[datetime] = None
    paid_amount: Optional[Decimal] = None
