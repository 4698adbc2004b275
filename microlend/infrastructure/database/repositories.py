"""Data access layer for users, loans, ledger entries and notifications"""

import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session
from microlend.infrastructure.database.models import (
    Loan,
    LoanInstallment,
    Notification,
    User,
    WalletTransaction,
)
from microlend.domain.models import Installment, ROLE_ADMIN


@dataclass
class UserFilter:
    """Optional criteria for listing users"""

    role: Optional[str] = None
    verified: Optional[bool] = None
    limit: int = 20
    offset: int = 0


@dataclass
class LoanFilter:
    """Optional criteria for listing loans; unset fields do not constrain"""

    borrower_id: Optional[uuid.UUID] = None
    lender_id: Optional[uuid.UUID] = None
    statuses: Optional[Sequence[str]] = None
    limit: int = 20
    offset: int = 0


@dataclass
class TransactionFilter:
    """Optional criteria for listing ledger entries of one user"""

    user_id: uuid.UUID
    txn_type: Optional[str] = None
    loan_id: Optional[uuid.UUID] = None
    limit: int = 20
    offset: int = 0


class UserRepository:
    """Repository for users"""

    def __init__(self, db: Session):
        self.db = db

    def create_user(self, **fields) -> User:
        db_user = User(**fields)
        self.db.add(db_user)
        self.db.flush()
        return db_user

    def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_user_for_update(self, user_id: uuid.UUID) -> Optional[User]:
        """Fetch and row-lock a user for a read-modify-write"""
        return (
            self.db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def list_users(self, criteria: UserFilter) -> List[User]:
        return (
            self._filtered(criteria)
            .order_by(User.created_at.desc())
            .offset(criteria.offset)
            .limit(criteria.limit)
            .all()
        )

    def count_users(self, criteria: UserFilter) -> int:
        return self._filtered(criteria).count()

    def list_admin_ids(self) -> List[uuid.UUID]:
        """Current admin set, queried at notification delivery time"""
        return [row.id for row in self.db.query(User.id).filter(User.role == ROLE_ADMIN).all()]

    def _filtered(self, criteria: UserFilter):
        query = self.db.query(User)
        if criteria.role is not None:
            query = query.filter(User.role == criteria.role)
        if criteria.verified is not None:
            query = query.filter(User.verified == criteria.verified)
        return query


class LoanRepository:
    """Repository for loans and their schedules"""

    def __init__(self, db: Session):
        self.db = db

    def create_loan(self, **fields) -> Loan:
        db_loan = Loan(**fields)
        self.db.add(db_loan)
        self.db.flush()  # Get ID without committing
        return db_loan

    def get_loan(self, loan_id: uuid.UUID) -> Optional[Loan]:
        return self.db.get(Loan, loan_id)

    def get_loan_for_update(self, loan_id: uuid.UUID) -> Optional[Loan]:
        """Fetch and row-lock a loan, refreshing any stale identity-map copy"""
        return (
            self.db.query(Loan)
            .filter(Loan.id == loan_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def find_borrower_loan(self, borrower_id: uuid.UUID, statuses: Sequence[str]) -> Optional[Loan]:
        """First loan of a borrower in any of the given statuses"""
        return (
            self.db.query(Loan)
            .filter(Loan.borrower_id == borrower_id, Loan.status.in_(list(statuses)))
            .order_by(Loan.created_at.asc())
            .first()
        )

    def list_loans(self, criteria: LoanFilter) -> List[Loan]:
        return (
            self._filtered(criteria)
            .order_by(Loan.created_at.desc())
            .offset(criteria.offset)
            .limit(criteria.limit)
            .all()
        )

    def count_loans(self, criteria: LoanFilter) -> int:
        return self._filtered(criteria).count()

    def add_schedule(self, loan: Loan, installments: List[Installment]) -> None:
        """Persist a freshly generated schedule for a loan"""
        for inst in installments:
            loan.installments.append(
                LoanInstallment(
                    installment_no=inst.installment_no,
                    due_date=inst.due_date,
                    amount=inst.amount,
                    principal=inst.principal,
                    interest=inst.interest,
                    balance=inst.balance,
                    status=inst.status,
                )
            )

    def _filtered(self, criteria: LoanFilter):
        query = self.db.query(Loan)
        if criteria.borrower_id is not None:
            query = query.filter(Loan.borrower_id == criteria.borrower_id)
        if criteria.lender_id is not None:
            query = query.filter(Loan.lender_id == criteria.lender_id)
        if criteria.statuses:
            query = query.filter(Loan.status.in_(list(criteria.statuses)))
        return query


class TransactionRepository:
    """Repository for write-once wallet ledger entries"""

    def __init__(self, db: Session):
        self.db = db

    def add_transaction(self, **fields) -> WalletTransaction:
        db_txn = WalletTransaction(**fields)
        self.db.add(db_txn)
        return db_txn

    def list_transactions(self, criteria: TransactionFilter) -> List[WalletTransaction]:
        return (
            self._filtered(criteria)
            .order_by(WalletTransaction.created_at.desc())
            .offset(criteria.offset)
            .limit(criteria.limit)
            .all()
        )

    def count_transactions(self, criteria: TransactionFilter) -> int:
        return self._filtered(criteria).count()

    def _filtered(self, criteria: TransactionFilter):
        query = self.db.query(WalletTransaction).filter(WalletTransaction.user_id == criteria.user_id)
        if criteria.txn_type is not None:
            query = query.filter(WalletTransaction.type == criteria.txn_type)
        if criteria.loan_id is not None:
            query = query.filter(WalletTransaction.loan_id == criteria.loan_id)
        return query


class NotificationRepository:
    """Repository for in-app notifications"""

    def __init__(self, db: Session):
        self.db = db

    def add_notification(self, **fields) -> Notification:
        db_notification = Notification(**fields)
        self.db.add(db_notification)
        return db_notification

    def list_for_user(self, user_id: uuid.UUID, limit: int = 50) -> List[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .all()
        )

    def unread_count(self, user_id: uuid.UUID) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read.is_(False))
            .count()
        )

    def mark_read(self, user_id: uuid.UUID, notification_id: uuid.UUID) -> Optional[Notification]:
        notification = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )
        if notification is not None:
            notification.read = True
        return notification

    def mark_all_read(self, user_id: uuid.UUID) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read.is_(False))
            .update({Notification.read: True}, synchronize_session="fetch")
        )
