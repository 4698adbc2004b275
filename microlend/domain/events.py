"""Domain events emitted by lifecycle operations for notification dispatch"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Event types
LOAN_APPLIED = "loan_applied"
LOAN_APPROVED = "loan_approved"
LOAN_REJECTED = "loan_rejected"
LOAN_FUNDED = "loan_funded"
EMI_PAID = "emi_paid"
EMI_RECEIVED = "emi_received"
LOAN_FULLY_REPAID = "loan_fully_repaid"
WALLET_TOPUP = "topup"
ACCOUNT_VERIFIED = "system"

# Audiences resolved by the dispatcher at delivery time
AUDIENCE_ADMINS = "admins"


@dataclass
class DomainEvent:
    """
    Something happened that a user (or a group of users) should hear about.

    Exactly one of recipient_user_id or audience is set. Audiences are
    expanded to concrete users by the dispatcher, not by the operation that
    emits the event.
    """

    event_type: str
    title: str
    message: str
    recipient_user_id: Optional[uuid.UUID] = None
    audience: Optional[str] = None
    loan_id: Optional[uuid.UUID] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if (self.recipient_user_id is None) == (self.audience is None):
            raise ValueError("DomainEvent needs exactly one of recipient_user_id or audience")


def short_id(entity_id: uuid.UUID) -> str:
    """Human-friendly loan tag used in descriptions, e.g. #A1B2C3"""
    return entity_id.hex[-6:].upper()
