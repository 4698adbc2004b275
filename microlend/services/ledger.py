"""Wallet ledger - balanced debit/credit entries for simulated wallet balances"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from microlend.config import settings
from microlend.domain.exceptions import InsufficientFunds, ValidationError
from microlend.domain.models import (
    DIRECTION_CREDIT,
    DIRECTION_DEBIT,
    TXN_TOPUP,
    TXN_TYPES,
)
from microlend.domain.money import Numeric, round_money
from microlend.infrastructure.database.models import Loan, User, WalletTransaction
from microlend.infrastructure.database.unit_of_work import UnitOfWork
from microlend.infrastructure.observability.metrics import record_ledger_movement

logger = logging.getLogger(__name__)


def new_reference() -> str:
    """Unique ledger reference token, e.g. TXN3F9A...(20 hex chars)"""
    return f"TXN{uuid.uuid4().hex[:20].upper()}"


class WalletLedger:
    """
    Applies wallet mutations and records one Transaction per side.

    The ledger flushes nothing and commits nothing: it works inside the
    caller's UnitOfWork so both sides of a transfer land together or not at
    all. Volume metrics are recorded only once that unit of work commits.
    """

    def __init__(self, uow: UnitOfWork):
        self.uow = uow
        self.transactions = uow.transactions

    def transfer(
        self,
        from_user: User,
        to_user: User,
        amount: Numeric,
        types: Tuple[str, str],
        description: str,
        counter_description: Optional[str] = None,
        loan: Optional[Loan] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Tuple[WalletTransaction, WalletTransaction]:
        """
        Move amount from one wallet to another.

        Args:
            types: (debit_type, credit_type), e.g. ("loan_funded", "loan_received")
            description: Text on the payer's entry
            counter_description: Text on the payee's entry (defaults to description)

        Returns:
            (debit entry, credit entry), sharing one reference token

        Raises:
            ValidationError: amount not positive or unknown transaction type
            InsufficientFunds: payer's wallet is lower than amount; nothing is mutated
        """
        value = self._positive_amount(amount)
        debit_type, credit_type = types
        self._check_type(debit_type)
        self._check_type(credit_type)

        if from_user.id == to_user.id:
            raise ValidationError("Cannot transfer to the same wallet")
        if from_user.wallet < value:
            raise InsufficientFunds(
                f"Insufficient wallet balance. Need {value} but have {from_user.wallet}"
            )

        reference = new_reference()
        debit = self._apply(
            from_user, value, DIRECTION_DEBIT, debit_type, description, f"{reference}-D", loan, meta
        )
        credit = self._apply(
            to_user, value, DIRECTION_CREDIT, credit_type, counter_description or description,
            f"{reference}-C", loan, meta,
        )

        self.uow.after_commit(record_ledger_movement, debit_type, value)
        logger.info(
            "Wallet transfer recorded",
            extra={
                "reference": reference,
                "from_user_id": str(from_user.id),
                "to_user_id": str(to_user.id),
                "amount": str(value),
                "txn_type": debit_type,
            },
        )
        return debit, credit

    def top_up(
        self,
        user: User,
        amount: Numeric,
        description: str = "Wallet top-up",
        reference: Optional[str] = None,
    ) -> WalletTransaction:
        """Credit a wallet from an external source, bounded per operation"""
        value = self._positive_amount(amount)
        if not settings.topup_min <= value <= settings.topup_max:
            raise ValidationError(
                f"Amount must be between {settings.topup_min} and {settings.topup_max}"
            )

        txn = self._apply(
            user, value, DIRECTION_CREDIT, TXN_TOPUP, description, reference or new_reference(), None, None
        )
        self.uow.after_commit(record_ledger_movement, TXN_TOPUP, value)
        return txn

    def _apply(
        self,
        user: User,
        amount: Decimal,
        direction: str,
        txn_type: str,
        description: str,
        reference: str,
        loan: Optional[Loan],
        meta: Optional[Dict[str, Any]],
    ) -> WalletTransaction:
        balance_before = round_money(user.wallet)
        if direction == DIRECTION_DEBIT:
            balance_after = balance_before - amount
        else:
            balance_after = balance_before + amount
        user.wallet = balance_after

        return self.transactions.add_transaction(
            user_id=user.id,
            loan_id=loan.id if loan is not None else None,
            type=txn_type,
            amount=amount,
            direction=direction,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description,
            reference=reference,
            meta=meta,
        )

    @staticmethod
    def _positive_amount(amount: Numeric) -> Decimal:
        value = round_money(amount)
        if value <= 0:
            raise ValidationError("Amount must be positive")
        return value

    @staticmethod
    def _check_type(txn_type: str) -> None:
        if txn_type not in TXN_TYPES:
            raise ValidationError(f"Unknown transaction type: {txn_type}")
