"""Transaction boundary for multi-entity mutations"""

import logging
from typing import Any, Callable, List, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from microlend.domain.exceptions import ConflictError, InternalError
from microlend.infrastructure.database.repositories import (
    LoanRepository,
    NotificationRepository,
    TransactionRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Commit every change made inside the block, or none of them.

    Usage:
        with UnitOfWork(db) as uow:
            loan = uow.loans.get_loan_for_update(loan_id)
            ...

    Failure mapping:
    - Domain errors raised inside the block roll back and propagate as-is
    - StaleDataError (version counter mismatch) -> ConflictError
    - Any other SQLAlchemyError -> InternalError
    """

    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)
        self.loans = LoanRepository(db)
        self.transactions = TransactionRepository(db)
        self.notifications = NotificationRepository(db)
        self._after_commit: List[Tuple[Callable[..., Any], tuple]] = []

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                exc = e
            else:
                for callback, args in self._after_commit:
                    callback(*args)
                self._after_commit.clear()
                return False

        self._after_commit.clear()
        self.db.rollback()

        if isinstance(exc, StaleDataError):
            logger.warning("Concurrent modification detected", extra={"error": str(exc)})
            raise ConflictError("Entity was modified by a concurrent request, please retry") from exc
        if isinstance(exc, SQLAlchemyError):
            logger.error("Persistence failure, transaction rolled back", extra={"error": str(exc)})
            raise InternalError("Persistence failure") from exc
        return False

    def after_commit(self, callback: Callable[..., Any], *args: Any) -> None:
        """Run callback(*args) once the block commits; dropped on rollback"""
        self._after_commit.append((callback, args))

    def flush(self) -> None:
        """Push pending changes so version and constraint checks run now"""
        self.db.flush()
