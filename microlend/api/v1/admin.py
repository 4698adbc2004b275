"""Admin endpoints - user verification and loan review"""

import logging
from typing import Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from microlend.api.dependencies import (
    EventPublisher,
    get_account_service,
    get_lifecycle,
    get_publisher,
    get_request_id,
    http_error,
    parse_uuid,
    require_role,
)
from microlend.api.v1.schemas import (
    AdminNoteRequest,
    LoanResponse,
    LoanSchema,
    UserListResponse,
    UserSchema,
    VerifyRequest,
)
from microlend.domain.exceptions import DomainException
from microlend.domain.models import ROLE_ADMIN
from microlend.infrastructure.database.repositories import UserFilter, UserRepository
from microlend.infrastructure.database.session import get_db
from microlend.services.accounts import AccountService
from microlend.services.lifecycle import LoanLifecycle

router = APIRouter(dependencies=[Depends(require_role(ROLE_ADMIN))])


@router.get("/admin/users", response_model=UserListResponse)
def list_users(
    role: Optional[str] = Query(None),
    verified: Optional[bool] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    criteria = UserFilter(role=role, verified=verified, limit=limit, offset=offset)
    user_repo = UserRepository(db)
    return UserListResponse(
        users=[UserSchema.model_validate(u) for u in user_repo.list_users(criteria)],
        total=user_repo.count_users(criteria),
    )


@router.put("/admin/users/{user_id}/verify", response_model=UserSchema)
def verify_user(
    user_id: str,
    request_body: VerifyRequest,
    request: Request,
    accounts: AccountService = Depends(get_account_service),
    publisher: EventPublisher = Depends(get_publisher),
):
    request_id = get_request_id(request)
    try:
        result = accounts.set_verified(parse_uuid(user_id, "user ID"), request_body.verified)
    except DomainException as e:
        raise http_error(e)

    publisher.publish(result.events, request_id=request_id)
    return UserSchema.model_validate(result.user)


@router.put("/admin/loans/{loan_id}/approve", response_model=LoanResponse)
def approve_loan(
    loan_id: str,
    request: Request,
    request_body: Optional[AdminNoteRequest] = Body(None),
    db: Session = Depends(get_db),
    lifecycle: LoanLifecycle = Depends(get_lifecycle),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Approve a pending loan so lenders can fund it"""
    request_id = get_request_id(request)
    note = request_body.admin_note if request_body else None
    try:
        result = lifecycle.approve_loan(parse_uuid(loan_id, "loan ID"), admin_note=note)
    except DomainException as e:
        raise http_error(e)
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    publisher.publish(result.events, request_id=request_id)
    return LoanResponse(message="Loan approved", loan=LoanSchema.model_validate(result.loan))


@router.put("/admin/loans/{loan_id}/reject", response_model=LoanResponse)
def reject_loan(
    loan_id: str,
    request: Request,
    request_body: Optional[AdminNoteRequest] = Body(None),
    db: Session = Depends(get_db),
    lifecycle: LoanLifecycle = Depends(get_lifecycle),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Reject a pending or approved loan; the borrower loses 5 credit points"""
    request_id = get_request_id(request)
    note = request_body.admin_note if request_body else None
    try:
        result = lifecycle.reject_loan(parse_uuid(loan_id, "loan ID"), admin_note=note)
    except DomainException as e:
        raise http_error(e)
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    publisher.publish(result.events, request_id=request_id)
    return LoanResponse(message="Loan rejected", loan=LoanSchema.model_validate(result.loan))
