"""Loan lifecycle state machine - apply, approve, reject, fund, repay"""

import functools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from microlend.domain import events as ev
from microlend.domain.emi import calculate_emi, monthly_rate, validate_loan_terms
from microlend.domain.events import DomainEvent, short_id
from microlend.domain.exceptions import (
    AccessDenied,
    DomainException,
    InvalidStateTransition,
    NotApprovedYet,
    NotFoundError,
    ValidationError,
)
from microlend.domain.installments import generate_schedule
from microlend.domain.models import (
    INSTALLMENT_PAID,
    INSTALLMENT_PENDING,
    LOAN_ACTIVE,
    LOAN_APPROVED,
    LOAN_COMPLETED,
    LOAN_PENDING,
    LOAN_REJECTED,
    ROLE_BORROWER,
    ROLE_LENDER,
    TXN_EMI_PAID,
    TXN_EMI_RECEIVED,
    TXN_LOAN_FUNDED,
    TXN_LOAN_RECEIVED,
)
from microlend.domain.money import ZERO, round_money
from microlend.domain.scoring import (
    DELTA_LOAN_REJECTED,
    REASON_LOAN_REJECTED,
    adjust_credit_score,
    repayment_delta,
    risk_bucket,
)
from microlend.infrastructure.database.models import Loan, User
from microlend.infrastructure.database.unit_of_work import UnitOfWork
from microlend.infrastructure.observability.logging import log_lifecycle
from microlend.infrastructure.observability.metrics import (
    record_credit_adjustment,
    record_rejection,
    record_transition,
)
from microlend.services.ledger import WalletLedger
from microlend.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_NOTE = "Application does not meet requirements"


@dataclass
class LifecycleResult:
    """Updated loan plus the events the caller should dispatch"""

    loan: Loan
    events: List[DomainEvent] = field(default_factory=list)


def _tracked(operation: str):
    """Record metrics and a structured log line for each lifecycle call"""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs) -> LifecycleResult:
            try:
                result = func(self, *args, **kwargs)
            except DomainException as e:
                record_rejection(operation, e)
                logger.warning(
                    f"{operation} refused: {e}",
                    extra={"step": operation, "request_id": self.request_id},
                )
                raise

            record_transition(operation, result.loan.status)
            log_lifecycle(
                operation,
                result.loan.id,
                result.loan.status,
                request_id=self.request_id,
                events=len(result.events),
            )
            return result

        return wrapper

    return decorator


class LoanLifecycle:
    """
    Orchestrates loan state transitions and their wallet and credit effects.

    States:
        pending -> approved | rejected
        approved -> active (funding) | rejected
        active -> completed (all installments paid)

    Every public method runs inside one UnitOfWork: loans and users are
    row-locked on read and carry a version counter, so a concurrent duplicate
    call either waits for the lock or fails with ConflictError. Nothing is
    half-applied.
    """

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        request_id: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock
        self.request_id = request_id

    @_tracked("apply")
    def apply_loan(
        self,
        borrower_id: uuid.UUID,
        amount,
        interest_rate,
        tenure: int,
        purpose: str,
        description: Optional[str] = None,
    ) -> LifecycleResult:
        """Submit a loan application; only one pending application per borrower"""
        principal, rate, tenure = validate_loan_terms(amount, interest_rate, tenure)
        if not purpose or not purpose.strip():
            raise ValidationError("Purpose is required")

        with UnitOfWork(self.db) as uow:
            borrower = self._require_user(uow, borrower_id)
            if borrower.role != ROLE_BORROWER:
                raise AccessDenied("Only borrowers can apply for loans")
            if not borrower.verified:
                raise AccessDenied("Your account must be verified to apply for loans")

            # Only an existing pending application blocks a new one
            if uow.loans.find_borrower_loan(borrower.id, [LOAN_PENDING]) is not None:
                raise InvalidStateTransition("You already have a pending loan application")

            quote = calculate_emi(principal, rate, tenure)
            loan = uow.loans.create_loan(
                borrower_id=borrower.id,
                amount=principal,
                interest_rate=rate,
                tenure=tenure,
                purpose=purpose.strip(),
                description=description,
                status=LOAN_PENDING,
                emi=quote.emi,
                total_payable=quote.total_payable,
                total_interest=quote.total_interest,
                paid_amount=ZERO,
                remaining_amount=quote.total_payable,
                risk_score=risk_bucket(borrower.credit_score),
                created_at=self.clock(),
            )

            events = [
                DomainEvent(
                    event_type=ev.LOAN_APPLIED,
                    audience=ev.AUDIENCE_ADMINS,
                    loan_id=loan.id,
                    title="New Loan Application",
                    message=f'{borrower.name} applied for a {principal} loan for "{loan.purpose}"',
                    payload={"amount": str(principal), "risk_score": loan.risk_score},
                ),
                DomainEvent(
                    event_type=ev.LOAN_APPLIED,
                    recipient_user_id=borrower.id,
                    loan_id=loan.id,
                    title="Loan Application Submitted",
                    message=f"Your loan application for {principal} has been submitted and is pending admin review.",
                    payload={"amount": str(principal), "emi": str(quote.emi)},
                ),
            ]

        return LifecycleResult(loan, events)

    @_tracked("approve")
    def approve_loan(self, loan_id: uuid.UUID, admin_note: Optional[str] = None) -> LifecycleResult:
        """Admin approval makes a pending loan visible to lenders"""
        with UnitOfWork(self.db) as uow:
            loan = self._require_loan(uow, loan_id)
            if loan.status != LOAN_PENDING:
                raise InvalidStateTransition("Only pending loans can be approved")

            loan.status = LOAN_APPROVED
            loan.approved_at = self.clock()
            loan.admin_note = admin_note or ""
            uow.flush()

            events = [
                DomainEvent(
                    event_type=ev.LOAN_APPROVED,
                    recipient_user_id=loan.borrower_id,
                    loan_id=loan.id,
                    title="Loan Approved!",
                    message=f"Your loan application for {loan.amount} has been approved by admin. "
                    "It will be visible to lenders for funding.",
                )
            ]

        return LifecycleResult(loan, events)

    @_tracked("reject")
    def reject_loan(self, loan_id: uuid.UUID, admin_note: Optional[str] = None) -> LifecycleResult:
        """Reject a pending or approved loan; costs the borrower 5 credit points"""
        with UnitOfWork(self.db) as uow:
            loan = self._require_loan(uow, loan_id)
            if loan.status not in (LOAN_PENDING, LOAN_APPROVED):
                raise InvalidStateTransition("Cannot reject this loan")

            borrower = self._lock_users(uow, [loan.borrower_id])[loan.borrower_id]
            now = self.clock()

            loan.status = LOAN_REJECTED
            loan.admin_note = admin_note or DEFAULT_REJECTION_NOTE
            adjust_credit_score(borrower, DELTA_LOAN_REJECTED, REASON_LOAN_REJECTED, now)
            uow.flush()

            events = [
                DomainEvent(
                    event_type=ev.LOAN_REJECTED,
                    recipient_user_id=borrower.id,
                    loan_id=loan.id,
                    title="Loan Application Rejected",
                    message=f"Your loan application for {loan.amount} has been rejected. Reason: {loan.admin_note}",
                    payload={"credit_score": borrower.credit_score},
                )
            ]

        record_credit_adjustment(DELTA_LOAN_REJECTED)
        return LifecycleResult(loan, events)

    @_tracked("fund")
    def fund_loan(self, lender_id: uuid.UUID, loan_id: uuid.UUID) -> LifecycleResult:
        """
        Lender funds an approved loan from their wallet.

        Effects (all-or-nothing):
        - loan.amount moves lender -> borrower with loan_funded/loan_received entries
        - loan becomes active with lender and funded_at set
        - schedule of `tenure` installments generated from funded_at
        - lender.total_funded, borrower.total_borrowed and activeLoansCount grow

        Raises:
            NotApprovedYet: loan is not in approved status
            InsufficientFunds: lender wallet is below loan.amount
        """
        with UnitOfWork(self.db) as uow:
            loan = self._require_loan(uow, loan_id)
            users = self._lock_users(uow, [lender_id, loan.borrower_id])
            lender = users[lender_id]
            borrower = users[loan.borrower_id]

            if lender.role != ROLE_LENDER:
                raise AccessDenied("Only lenders can fund loans")
            if loan.status != LOAN_APPROVED:
                raise NotApprovedYet("Loan must be approved before funding")

            now = self.clock()
            tag = short_id(loan.id)
            WalletLedger(uow).transfer(
                lender,
                borrower,
                loan.amount,
                types=(TXN_LOAN_FUNDED, TXN_LOAN_RECEIVED),
                description=f"Funded loan #{tag} for {borrower.name}",
                counter_description=f"Loan disbursed from {lender.name}",
                loan=loan,
            )

            lender.total_funded += loan.amount
            borrower.total_borrowed += loan.amount
            borrower.active_loans_count += 1

            loan.lender_id = lender.id
            loan.status = LOAN_ACTIVE
            loan.funded_at = now
            schedule = generate_schedule(
                principal=loan.amount,
                monthly_rate=monthly_rate(loan.interest_rate),
                tenure_months=loan.tenure,
                emi=loan.emi,
                start=now,
                total_payable=loan.total_payable,
            )
            uow.loans.add_schedule(loan, schedule)
            uow.flush()

            first_due = schedule[0].due_date.date().isoformat()
            events = [
                DomainEvent(
                    event_type=ev.LOAN_FUNDED,
                    recipient_user_id=lender.id,
                    loan_id=loan.id,
                    title="Loan Funded Successfully",
                    message=f"You funded a {loan.amount} loan for {borrower.name}. "
                    f"You will receive {loan.total_payable} back.",
                    payload={"amount": str(loan.amount), "total_payable": str(loan.total_payable)},
                ),
                DomainEvent(
                    event_type=ev.LOAN_FUNDED,
                    recipient_user_id=borrower.id,
                    loan_id=loan.id,
                    title="Loan Disbursed!",
                    message=f"{loan.amount} has been credited to your wallet by {lender.name}. "
                    f"First EMI of {loan.emi} is due on {first_due}.",
                    payload={"amount": str(loan.amount), "emi": str(loan.emi), "first_due": first_due},
                ),
            ]

        return LifecycleResult(loan, events)

    @_tracked("repay")
    def repay_next_installment(
        self,
        borrower_id: uuid.UUID,
        loan_id: uuid.UUID,
        installment_no: Optional[int] = None,
    ) -> LifecycleResult:
        """
        Pay the lowest-numbered pending installment of an active loan.

        Installments are paid strictly in order. Passing installment_no only
        asserts which installment the caller expects to pay; any number other
        than the next pending one is refused.

        Credit: +5 when paid by the due date, +3 when late.
        """
        with UnitOfWork(self.db) as uow:
            loan = self._require_loan(uow, loan_id)
            if loan.borrower_id != borrower_id:
                raise AccessDenied("Access denied")
            if loan.status != LOAN_ACTIVE:
                raise InvalidStateTransition("Loan is not active")

            pending = [inst for inst in loan.installments if inst.status == INSTALLMENT_PENDING]
            if not pending:
                raise InvalidStateTransition("All EMIs have been paid")
            installment = min(pending, key=lambda inst: inst.installment_no)
            if installment_no is not None and installment_no != installment.installment_no:
                raise InvalidStateTransition(
                    f"Installments must be paid in order; next due is #{installment.installment_no}"
                )

            users = self._lock_users(uow, [borrower_id, loan.lender_id])
            borrower = users[borrower_id]
            lender = users[loan.lender_id]

            now = self.clock()
            amount = installment.amount
            is_late = now > installment.due_date
            number = installment.installment_no

            WalletLedger(uow).transfer(
                borrower,
                lender,
                amount,
                types=(TXN_EMI_PAID, TXN_EMI_RECEIVED),
                description=f"EMI #{number} paid for loan #{short_id(loan.id)}",
                counter_description=f"EMI #{number} received from {borrower.name}",
                loan=loan,
                meta={"installment_no": number},
            )
            borrower.total_repaid += amount
            lender.total_returns += amount

            installment.status = INSTALLMENT_PAID
            installment.paid_at = now
            installment.paid_amount = amount

            loan.paid_amount = round_money(loan.paid_amount + amount)
            loan.remaining_amount = max(ZERO, round_money(loan.total_payable - loan.paid_amount))

            events: List[DomainEvent] = []
            if all(inst.status == INSTALLMENT_PAID for inst in loan.installments):
                loan.status = LOAN_COMPLETED
                loan.completed_at = now
                borrower.active_loans_count = max(0, borrower.active_loans_count - 1)
                events.extend(self._fully_repaid_events(loan, borrower, lender))

            delta, reason = repayment_delta(is_late)
            adjust_credit_score(borrower, delta, reason, now)
            uow.flush()

            events.extend(
                [
                    DomainEvent(
                        event_type=ev.EMI_PAID,
                        recipient_user_id=borrower.id,
                        loan_id=loan.id,
                        title=f"EMI #{number} Paid",
                        message=f"Your EMI of {amount} has been paid. Credit score +{delta}.",
                        payload={
                            "installment_no": number,
                            "amount": str(amount),
                            "late": is_late,
                            "credit_score": borrower.credit_score,
                        },
                    ),
                    DomainEvent(
                        event_type=ev.EMI_RECEIVED,
                        recipient_user_id=lender.id,
                        loan_id=loan.id,
                        title=f"EMI Received from {borrower.name}",
                        message=f"{amount} received as EMI #{number}.",
                        payload={"installment_no": number, "amount": str(amount)},
                    ),
                ]
            )

        record_credit_adjustment(delta)
        return LifecycleResult(loan, events)

    @staticmethod
    def _fully_repaid_events(loan: Loan, borrower: User, lender: User) -> List[DomainEvent]:
        return [
            DomainEvent(
                event_type=ev.LOAN_FULLY_REPAID,
                recipient_user_id=borrower.id,
                loan_id=loan.id,
                title="Loan Fully Repaid!",
                message=f"Congratulations! You've fully repaid your {loan.amount} loan.",
                payload={"total_paid": str(loan.paid_amount)},
            ),
            DomainEvent(
                event_type=ev.LOAN_FULLY_REPAID,
                recipient_user_id=lender.id,
                loan_id=loan.id,
                title="Loan Repaid Fully",
                message=f"The loan of {loan.amount} you funded has been fully repaid. "
                f"Total received: {loan.paid_amount}.",
                payload={"total_received": str(loan.paid_amount)},
            ),
        ]

    @staticmethod
    def _require_loan(uow: UnitOfWork, loan_id: uuid.UUID) -> Loan:
        loan = uow.loans.get_loan_for_update(loan_id)
        if loan is None:
            raise NotFoundError("Loan not found")
        return loan

    @staticmethod
    def _require_user(uow: UnitOfWork, user_id: uuid.UUID) -> User:
        user = uow.users.get_user_for_update(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    @classmethod
    def _lock_users(cls, uow: UnitOfWork, user_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, User]:
        """Lock users in id order so two operations never wait on each other in a cycle"""
        return {user_id: cls._require_user(uow, user_id) for user_id in sorted(set(user_ids))}

