"""Account operations outside the loan lifecycle: registration, verification, wallet top-up"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from microlend.config import settings
from microlend.domain import events as ev
from microlend.domain.events import DomainEvent
from microlend.domain.exceptions import NotFoundError, ValidationError
from microlend.domain.models import ROLES
from microlend.domain.scoring import simulate_credit_action
from microlend.infrastructure.database.models import User, WalletTransaction
from microlend.infrastructure.database.unit_of_work import UnitOfWork
from microlend.infrastructure.observability.metrics import record_credit_adjustment
from microlend.services.ledger import WalletLedger
from microlend.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class AccountResult:
    user: User
    events: List[DomainEvent] = field(default_factory=list)
    transaction: Optional[WalletTransaction] = None
    detail: Dict[str, Any] = field(default_factory=dict)


class AccountService:
    """User-level operations; each call is its own unit of work"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def register_user(self, name: str, email: str, role: str, phone: Optional[str] = None) -> AccountResult:
        if role not in ROLES:
            raise ValidationError(f"role must be one of {', '.join(ROLES)}")

        with UnitOfWork(self.db) as uow:
            normalized = email.strip().lower()
            if uow.users.get_user_by_email(normalized) is not None:
                raise ValidationError("Email is already registered")
            try:
                user = uow.users.create_user(
                    name=name.strip(),
                    email=normalized,
                    role=role,
                    phone=phone,
                    credit_score=settings.credit_score_default,
                )
            except IntegrityError as e:
                # A concurrent registration won the unique email index
                raise ValidationError("Email is already registered") from e

        logger.info("User registered", extra={"user_id": str(user.id), "role": role})
        return AccountResult(user)

    def set_verified(self, user_id: uuid.UUID, verified: bool) -> AccountResult:
        """Admin toggles a user's verification; verified borrowers may apply for loans"""
        with UnitOfWork(self.db) as uow:
            user = uow.users.get_user_for_update(user_id)
            if user is None:
                raise NotFoundError("User not found")
            user.verified = verified
            uow.flush()

            events = [
                DomainEvent(
                    event_type=ev.ACCOUNT_VERIFIED,
                    recipient_user_id=user.id,
                    title="Account Verified" if verified else "Account Unverified",
                    message=(
                        "Your account has been verified by admin. You can now apply for loans."
                        if verified
                        else "Your account verification has been revoked."
                    ),
                )
            ]

        return AccountResult(user, events)

    def top_up(self, user_id: uuid.UUID, amount, reference: Optional[str] = None) -> AccountResult:
        """Credit a wallet from an external source"""
        with UnitOfWork(self.db) as uow:
            user = uow.users.get_user_for_update(user_id)
            if user is None:
                raise NotFoundError("User not found")
            txn = WalletLedger(uow).top_up(user, amount, reference=reference)
            uow.flush()

            events = [
                DomainEvent(
                    event_type=ev.WALLET_TOPUP,
                    recipient_user_id=user.id,
                    title="Wallet Topped Up",
                    message=f"{txn.amount} added to your wallet. New balance: {user.wallet}",
                    payload={"amount": str(txn.amount), "balance": str(user.wallet)},
                )
            ]

        return AccountResult(user, events, transaction=txn)

    def simulate_credit(self, user_id: uuid.UUID, action: str) -> AccountResult:
        """Demo tool: apply a named credit event to the caller's score"""
        with UnitOfWork(self.db) as uow:
            user = uow.users.get_user_for_update(user_id)
            if user is None:
                raise NotFoundError("User not found")
            entry = simulate_credit_action(user, action, self.clock())
            uow.flush()

        record_credit_adjustment(entry["delta"])
        return AccountResult(user, detail=entry)
