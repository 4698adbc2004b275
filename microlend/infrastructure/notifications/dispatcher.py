"""Turns domain events into per-user in-app notifications"""

import logging
from typing import Any, Dict, Iterable, List

from sqlalchemy.orm import Session

from microlend.domain.events import AUDIENCE_ADMINS, DomainEvent
from microlend.infrastructure.database.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Deliver events as Notification rows.

    Audiences are expanded here, at delivery time, so an admin added after
    the event was emitted still receives it.
    """

    def __init__(self, db: Session):
        self.db = db

    def dispatch(self, events: Iterable[DomainEvent]) -> List[Dict[str, Any]]:
        """
        Persist one notification per resolved recipient.

        Returns:
            Serializable notification payloads, suitable for the event webhook
        """
        delivered: List[Dict[str, Any]] = []
        with UnitOfWork(self.db) as uow:
            for event in events:
                for recipient_id in self._recipients(uow, event):
                    uow.notifications.add_notification(
                        user_id=recipient_id,
                        loan_id=event.loan_id,
                        type=event.event_type,
                        title=event.title,
                        message=event.message,
                    )
                    delivered.append(
                        {
                            "event": event.event_type,
                            "recipient_user_id": str(recipient_id),
                            "loan_id": str(event.loan_id) if event.loan_id else None,
                            "title": event.title,
                            "message": event.message,
                            "payload": event.payload,
                        }
                    )

        logger.info("Notifications dispatched", extra={"count": len(delivered)})
        return delivered

    @staticmethod
    def _recipients(uow: UnitOfWork, event: DomainEvent) -> List:
        if event.recipient_user_id is not None:
            return [event.recipient_user_id]
        if event.audience == AUDIENCE_ADMINS:
            return uow.users.list_admin_ids()
        logger.warning("Unknown audience, event dropped", extra={"audience": event.audience})
        return []
