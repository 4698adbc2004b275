"""SQLAlchemy ORM models for users, loans, schedules and the wallet ledger"""

import uuid
from decimal import Decimal
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship

from microlend.domain.emi import loan_progress
from microlend.utils.date_utils import utcnow

Base = declarative_base()

Money = Numeric(12, 2)


class User(Base):
    """Platform participant: borrower, lender or admin"""

    __tablename__ = "app_user"
    __table_args__ = (
        CheckConstraint("wallet >= 0", name="ck_user_wallet_non_negative"),
        CheckConstraint("credit_score BETWEEN 300 AND 850", name="ck_user_credit_score_range"),
        CheckConstraint("active_loans_count >= 0", name="ck_user_active_loans_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(Text, nullable=False, default="borrower")
    phone = Column(Text, nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    wallet = Column(Money, nullable=False, default=Decimal("0.00"))
    credit_score = Column(Integer, nullable=False, default=650)
    total_borrowed = Column(Money, nullable=False, default=Decimal("0.00"))
    total_repaid = Column(Money, nullable=False, default=Decimal("0.00"))
    total_funded = Column(Money, nullable=False, default=Decimal("0.00"))
    total_returns = Column(Money, nullable=False, default=Decimal("0.00"))
    active_loans_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    credit_history = relationship(
        "CreditHistoryEntry",
        back_populates="user",
        order_by="CreditHistoryEntry.id",
        cascade="all, delete-orphan",
    )

    # Concurrent writers to the same user fail with StaleDataError on flush
    __mapper_args__ = {"version_id_col": version}

    def record_credit_change(self, recorded_at, score: int, delta: int, reason: str) -> None:
        self.credit_history.append(
            CreditHistoryEntry(recorded_at=recorded_at, score=score, delta=delta, reason=reason)
        )


class CreditHistoryEntry(Base):
    """Append-only record of one credit score adjustment"""

    __tablename__ = "credit_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    recorded_at = Column(DateTime, nullable=False, default=utcnow)
    score = Column(Integer, nullable=False)
    delta = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)

    user = relationship("User", back_populates="credit_history")


class Loan(Base):
    """Loan application and, once funded, its repayment state"""

    __tablename__ = "loan"
    __table_args__ = (
        CheckConstraint("paid_amount >= 0", name="ck_loan_paid_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    lender_id = Column(Uuid, ForeignKey("app_user.id"), nullable=True, index=True)
    amount = Column(Money, nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False)  # annual %
    tenure = Column(Integer, nullable=False)  # months
    purpose = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending", index=True)
    emi = Column(Money, nullable=False)
    total_payable = Column(Money, nullable=False)
    total_interest = Column(Money, nullable=False)
    paid_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    remaining_amount = Column(Money, nullable=False)
    risk_score = Column(Text, nullable=False, default="medium")
    admin_note = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    funded_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    borrower = relationship("User", foreign_keys=[borrower_id])
    lender = relationship("User", foreign_keys=[lender_id])
    installments = relationship(
        "LoanInstallment",
        back_populates="loan",
        order_by="LoanInstallment.installment_no",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def progress(self) -> int:
        return loan_progress(self.paid_amount or Decimal("0"), self.total_payable)


class LoanInstallment(Base):
    """One EMI within a loan's amortization schedule"""

    __tablename__ = "loan_installment"
    __table_args__ = (
        UniqueConstraint("loan_id", "installment_no", name="uq_installment_loan_no"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid, ForeignKey("loan.id", ondelete="CASCADE"), nullable=False, index=True)
    installment_no = Column(Integer, nullable=False)
    due_date = Column(DateTime, nullable=False)
    amount = Column(Money, nullable=False)
    principal = Column(Money, nullable=False)
    interest = Column(Money, nullable=False)
    balance = Column(Money, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    paid_at = Column(DateTime, nullable=True)
    paid_amount = Column(Money, nullable=True)

    loan = relationship("Loan", back_populates="installments")


class WalletTransaction(Base):
    """Immutable wallet ledger entry"""

    __tablename__ = "wallet_transaction"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_txn_amount_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    loan_id = Column(Uuid, ForeignKey("loan.id"), nullable=True, index=True)
    type = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    direction = Column(Text, nullable=False)  # credit | debit
    balance_before = Column(Money, nullable=False)
    balance_after = Column(Money, nullable=False)
    description = Column(Text, nullable=False)
    reference = Column(Text, nullable=False, index=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Notification(Base):
    """In-app notification produced by the event dispatcher"""

    __tablename__ = "notification"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    loan_id = Column(Uuid, ForeignKey("loan.id"), nullable=True)
    type = Column(Text, nullable=False, default="system")
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
