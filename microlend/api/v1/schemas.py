"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ORMModel(BaseModel):
    """Base for responses built from ORM entities"""

    model_config = ConfigDict(from_attributes=True)


# Users


class UserCreateRequest(BaseModel):
    """Request body for POST /v1/users"""

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=r"^\S+@\S+\.\S+$", description="Unique email address")
    role: str = Field("borrower", description="borrower | lender | admin")
    phone: Optional[str] = None


class UserSchema(ORMModel):
    id: uuid.UUID
    name: str
    email: str
    role: str
    phone: Optional[str] = None
    verified: bool
    wallet: Decimal
    credit_score: int
    total_borrowed: Decimal
    total_repaid: Decimal
    total_funded: Decimal
    total_returns: Decimal
    active_loans_count: int
    created_at: datetime


class UserListResponse(BaseModel):
    users: List[UserSchema]
    total: int


class VerifyRequest(BaseModel):
    verified: bool


# Wallet and ledger


class TopUpRequest(BaseModel):
    """Request body for POST /v1/users/me/wallet/topup"""

    amount: Decimal = Field(..., gt=0, description="Amount to add to the wallet")


class TransactionSchema(ORMModel):
    id: uuid.UUID
    loan_id: Optional[uuid.UUID] = None
    type: str
    amount: Decimal
    direction: str
    balance_before: Decimal
    balance_after: Decimal
    description: str
    reference: str
    created_at: datetime


class WalletResponse(BaseModel):
    wallet: Decimal
    user: UserSchema


class TopUpResponse(BaseModel):
    wallet: Decimal
    transaction: TransactionSchema
    message: str


class TransactionListResponse(BaseModel):
    transactions: List[TransactionSchema]
    total: int
    limit: int
    offset: int


# Credit score


class CreditHistoryItem(ORMModel):
    recorded_at: datetime
    score: int
    delta: int
    reason: str


class CreditScoreResponse(BaseModel):
    credit_score: int
    history: List[CreditHistoryItem]


class CreditSimulateRequest(BaseModel):
    action: str = Field(..., description="on_time_payment | late_payment | missed_payment | new_loan | loan_closed")


class CreditSimulateResponse(BaseModel):
    credit_score: int
    delta: int
    reason: str


# Notifications


class NotificationSchema(ORMModel):
    id: uuid.UUID
    loan_id: Optional[uuid.UUID] = None
    type: str
    title: str
    message: str
    read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: List[NotificationSchema]
    unread_count: int


# Loans


class LoanApplyRequest(BaseModel):
    """Request body for POST /v1/loans"""

    amount: Decimal = Field(..., gt=0, description="Principal, 100 - 500000")
    interest_rate: Decimal = Field(..., gt=0, description="Annual %, 1 - 50")
    tenure: int = Field(..., gt=0, description="Months, 1 - 60")
    purpose: str = Field(..., min_length=1)
    description: Optional[str] = None


class AdminNoteRequest(BaseModel):
    admin_note: Optional[str] = None


class RepayRequest(BaseModel):
    installment_no: Optional[int] = Field(None, description="Installment the caller expects to pay")


class InstallmentSchema(ORMModel):
    """Single installment in an amortization schedule"""

    installment_no: int
    due_date: datetime
    amount: Decimal
    principal: Decimal
    interest: Decimal
    balance: Decimal
    status: str = "pending"
    paid_at: Optional[datetime] = None
    paid_amount: Optional[Decimal] = None


class LoanSchema(ORMModel):
    id: uuid.UUID
    borrower_id: uuid.UUID
    lender_id: Optional[uuid.UUID] = None
    amount: Decimal
    interest_rate: Decimal
    tenure: int
    purpose: str
    description: Optional[str] = None
    status: str
    emi: Decimal
    total_payable: Decimal
    total_interest: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    risk_score: str
    admin_note: Optional[str] = None
    approved_at: Optional[datetime] = None
    funded_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    progress: int


class LoanResponse(BaseModel):
    message: Optional[str] = None
    loan: LoanSchema


class LoanListResponse(BaseModel):
    count: int
    total: int
    loans: List[LoanSchema]


class ScheduleResponse(BaseModel):
    loan: LoanSchema
    schedule: List[InstallmentSchema]


class RepayResponse(BaseModel):
    message: str
    installment: InstallmentSchema
    new_balance: Decimal
    new_credit_score: int
    loan_status: str
