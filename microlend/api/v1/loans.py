"""Loan endpoints - apply, browse, fund, repay"""

import logging
from typing import Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from microlend.api.dependencies import (
    EventPublisher,
    get_current_user,
    get_lifecycle,
    get_publisher,
    get_request_id,
    http_error,
    parse_uuid,
    require_role,
)
from microlend.api.v1.schemas import (
    InstallmentSchema,
    LoanApplyRequest,
    LoanListResponse,
    LoanResponse,
    LoanSchema,
    RepayRequest,
    RepayResponse,
    ScheduleResponse,
)
from microlend.domain.exceptions import DomainException
from microlend.domain.models import (
    INSTALLMENT_PAID,
    LOAN_ACTIVE,
    LOAN_APPROVED,
    LOAN_COMPLETED,
    LOAN_FUNDED,
    LOAN_STATUSES,
    ROLE_BORROWER,
    ROLE_LENDER,
)
from microlend.infrastructure.database.models import Loan, User
from microlend.infrastructure.database.repositories import LoanFilter, LoanRepository
from microlend.infrastructure.database.session import get_db
from microlend.services.lifecycle import LoanLifecycle

router = APIRouter()

# What lenders see when they do not ask for specific statuses
LENDER_DEFAULT_STATUSES = (LOAN_APPROVED, LOAN_FUNDED, LOAN_ACTIVE, LOAN_COMPLETED)


def _load_visible_loan(loan_id: str, user: User, db: Session) -> Loan:
    loan = LoanRepository(db).get_loan(parse_uuid(loan_id, "loan ID"))
    if loan is None:
        raise HTTPException(status_code=404, detail="Loan not found")
    if user.role == ROLE_BORROWER and loan.borrower_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    return loan


@router.get("/loans", response_model=LoanListResponse)
def list_loans(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List loans visible to the caller.

    - borrower: own loans
    - lender: approved/funded/active/completed unless statuses are given
    - admin: everything
    """
    statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
    if statuses and any(s not in LOAN_STATUSES for s in statuses):
        raise HTTPException(status_code=400, detail=f"status must be among {', '.join(LOAN_STATUSES)}")

    if user.role == ROLE_BORROWER:
        criteria = LoanFilter(borrower_id=user.id, statuses=statuses, limit=limit, offset=offset)
    elif user.role == ROLE_LENDER:
        criteria = LoanFilter(statuses=statuses or LENDER_DEFAULT_STATUSES, limit=limit, offset=offset)
    else:
        criteria = LoanFilter(statuses=statuses, limit=limit, offset=offset)

    loan_repo = LoanRepository(db)
    loans = loan_repo.list_loans(criteria)
    return LoanListResponse(
        count=len(loans),
        total=loan_repo.count_loans(criteria),
        loans=[LoanSchema.model_validate(loan) for loan in loans],
    )


@router.post("/loans", response_model=LoanResponse, status_code=201)
def apply_for_loan(
    request_body: LoanApplyRequest,
    request: Request,
    user: User = Depends(require_role(ROLE_BORROWER)),
    db: Session = Depends(get_db),
    lifecycle: LoanLifecycle = Depends(get_lifecycle),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Submit a loan application.

    Flow:
    1. Validate terms and borrower eligibility (verified, no pending application)
    2. Compute EMI, total payable and risk bucket
    3. Persist the pending loan
    4. Notify admins and the borrower
    """
    request_id = get_request_id(request)
    try:
        result = lifecycle.apply_loan(
            borrower_id=user.id,
            amount=request_body.amount,
            interest_rate=request_body.interest_rate,
            tenure=request_body.tenure,
            purpose=request_body.purpose,
            description=request_body.description,
        )
    except DomainException as e:
        logging.warning(f"Loan application refused: {e}", extra={"request_id": request_id})
        raise http_error(e)
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    publisher.publish(result.events, request_id=request_id)
    return LoanResponse(message="Loan application submitted", loan=LoanSchema.model_validate(result.loan))


@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    loan = _load_visible_loan(loan_id, user, db)
    return LoanResponse(loan=LoanSchema.model_validate(loan))


@router.get("/loans/{loan_id}/schedule", response_model=ScheduleResponse)
def get_schedule(loan_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Retrieve the amortization schedule of a loan.

    Returns:
        Loan summary with one installment per month of tenure (empty before funding)
    """
    loan = _load_visible_loan(loan_id, user, db)
    return ScheduleResponse(
        loan=LoanSchema.model_validate(loan),
        schedule=[InstallmentSchema.model_validate(inst) for inst in loan.installments],
    )


@router.post("/loans/{loan_id}/fund", response_model=LoanResponse)
def fund_loan(
    loan_id: str,
    request: Request,
    user: User = Depends(require_role(ROLE_LENDER)),
    db: Session = Depends(get_db),
    lifecycle: LoanLifecycle = Depends(get_lifecycle),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Fund an approved loan from the lender's wallet; the loan becomes active"""
    request_id = get_request_id(request)
    loan_uuid = parse_uuid(loan_id, "loan ID")
    try:
        result = lifecycle.fund_loan(lender_id=user.id, loan_id=loan_uuid)
    except DomainException as e:
        logging.warning(f"Funding refused: {e}", extra={"request_id": request_id, "loan_id": loan_id})
        raise http_error(e)
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    publisher.publish(result.events, request_id=request_id)
    return LoanResponse(message="Loan funded successfully", loan=LoanSchema.model_validate(result.loan))


@router.post("/loans/{loan_id}/repay", response_model=RepayResponse)
def repay_loan(
    loan_id: str,
    request: Request,
    request_body: Optional[RepayRequest] = Body(None),
    user: User = Depends(require_role(ROLE_BORROWER)),
    db: Session = Depends(get_db),
    lifecycle: LoanLifecycle = Depends(get_lifecycle),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Pay the next pending EMI of an active loan"""
    request_id = get_request_id(request)
    loan_uuid = parse_uuid(loan_id, "loan ID")
    installment_no = request_body.installment_no if request_body else None
    try:
        result = lifecycle.repay_next_installment(
            borrower_id=user.id,
            loan_id=loan_uuid,
            installment_no=installment_no,
        )
    except DomainException as e:
        logging.warning(f"Repayment refused: {e}", extra={"request_id": request_id, "loan_id": loan_id})
        raise http_error(e)
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    publisher.publish(result.events, request_id=request_id)

    loan = result.loan
    paid = max(
        (inst for inst in loan.installments if inst.status == INSTALLMENT_PAID),
        key=lambda inst: inst.installment_no,
    )
    completed = loan.status == LOAN_COMPLETED
    return RepayResponse(
        message="Loan fully repaid! Congratulations!" if completed else f"EMI #{paid.installment_no} paid successfully",
        installment=InstallmentSchema.model_validate(paid),
        new_balance=user.wallet,
        new_credit_score=user.credit_score,
        loan_status=loan.status,
    )
