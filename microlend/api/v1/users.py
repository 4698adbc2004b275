"""User endpoints - registration, wallet, ledger history, credit score, notifications"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from microlend.api.dependencies import (
    EventPublisher,
    get_account_service,
    get_current_user,
    get_publisher,
    get_request_id,
    http_error,
    parse_uuid,
)
from microlend.api.v1.schemas import (
    CreditHistoryItem,
    CreditScoreResponse,
    CreditSimulateRequest,
    CreditSimulateResponse,
    NotificationListResponse,
    NotificationSchema,
    TopUpRequest,
    TopUpResponse,
    TransactionListResponse,
    TransactionSchema,
    UserCreateRequest,
    UserSchema,
    WalletResponse,
)
from microlend.domain.exceptions import DomainException
from microlend.domain.models import TXN_TYPES
from microlend.infrastructure.database.models import User
from microlend.infrastructure.database.repositories import (
    NotificationRepository,
    TransactionFilter,
    TransactionRepository,
)
from microlend.infrastructure.database.session import get_db
from microlend.services.accounts import AccountService

router = APIRouter()


@router.post("/users", response_model=UserSchema, status_code=201)
def register_user(
    request_body: UserCreateRequest,
    accounts: AccountService = Depends(get_account_service),
):
    """Create a platform user (credentials are handled by the auth layer)"""
    try:
        result = accounts.register_user(
            name=request_body.name,
            email=request_body.email,
            role=request_body.role,
            phone=request_body.phone,
        )
    except DomainException as e:
        raise http_error(e)
    return UserSchema.model_validate(result.user)


@router.get("/users/me/wallet", response_model=WalletResponse)
def get_wallet(user: User = Depends(get_current_user)):
    return WalletResponse(wallet=user.wallet, user=UserSchema.model_validate(user))


@router.post("/users/me/wallet/topup", response_model=TopUpResponse)
def top_up_wallet(
    request_body: TopUpRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Add simulated funds to the caller's wallet (bounded per operation)"""
    request_id = get_request_id(request)
    try:
        result = accounts.top_up(user.id, request_body.amount)
    except DomainException as e:
        raise http_error(e)
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    publisher.publish(result.events, request_id=request_id)
    return TopUpResponse(
        wallet=result.user.wallet,
        transaction=TransactionSchema.model_validate(result.transaction),
        message=f"{result.transaction.amount} added successfully",
    )


@router.get("/users/me/transactions", response_model=TransactionListResponse)
def list_transactions(
    type: Optional[str] = Query(None, description="Filter by transaction type"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if type is not None and type not in TXN_TYPES:
        raise HTTPException(status_code=400, detail=f"type must be one of {', '.join(TXN_TYPES)}")

    criteria = TransactionFilter(user_id=user.id, txn_type=type, limit=limit, offset=offset)
    txn_repo = TransactionRepository(db)
    return TransactionListResponse(
        transactions=[TransactionSchema.model_validate(t) for t in txn_repo.list_transactions(criteria)],
        total=txn_repo.count_transactions(criteria),
        limit=limit,
        offset=offset,
    )


@router.get("/users/me/credit-score", response_model=CreditScoreResponse)
def get_credit_score(user: User = Depends(get_current_user)):
    return CreditScoreResponse(
        credit_score=user.credit_score,
        history=[CreditHistoryItem.model_validate(entry) for entry in user.credit_history],
    )


@router.post("/users/me/credit-simulate", response_model=CreditSimulateResponse)
def simulate_credit(
    request_body: CreditSimulateRequest,
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    """Demo tool: apply a named credit event to the caller's score"""
    try:
        result = accounts.simulate_credit(user.id, request_body.action)
    except DomainException as e:
        raise http_error(e)
    return CreditSimulateResponse(
        credit_score=result.user.credit_score,
        delta=result.detail["delta"],
        reason=result.detail["reason"],
    )


@router.get("/users/me/notifications", response_model=NotificationListResponse)
def list_notifications(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    notification_repo = NotificationRepository(db)
    return NotificationListResponse(
        notifications=[NotificationSchema.model_validate(n) for n in notification_repo.list_for_user(user.id)],
        unread_count=notification_repo.unread_count(user.id),
    )


@router.put("/users/me/notifications/read-all")
def mark_all_notifications_read(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = NotificationRepository(db).mark_all_read(user.id)
    db.commit()
    return {"updated": updated}


@router.put("/users/me/notifications/{notification_id}/read", response_model=NotificationSchema)
def mark_notification_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = NotificationRepository(db).mark_read(user.id, parse_uuid(notification_id, "notification ID"))
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    db.commit()
    return NotificationSchema.model_validate(notification)
